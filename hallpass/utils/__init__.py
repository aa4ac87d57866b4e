"""
Utility modules for Hall Pass Hub.

This package contains the pass lifecycle and its helpers:
- pass_lifecycle: the pass state machine and duration rules
- pass_service: issuing, returning and querying passes
- pass_requests: request body and query string parsing
- helpers: Common utility functions (date formatting, timezones)
- constants: Application-wide constants (PASS_TYPE_LABELS)
"""
