"""
Shared Kernel Module
====================

Generic infrastructure used by the issue triage bounded context:
structured logging and the HTTP middleware stack.

DO NOT add triage business logic to the shared kernel.
"""

__version__ = "1.0.0"
