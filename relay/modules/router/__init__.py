"""
HTTP transport for the governance core.
"""
