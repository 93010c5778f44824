"""
Relay governance core.

Capability-based authorization and state governance for shared objects.
"""

__version__ = "0.1.0"
