"""
Adapters around the governance core.
"""
