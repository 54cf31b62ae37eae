"""Status package: enums, exceptions and outcomes for the preset engine.

This package defines:
    - Status: a StrEnum of possible outcome codes
    - STATUS_MESSAGE: default user-facing messages per status
    - BaseStatusException: base exception for status-driven error handling
    - Outcome: the result type returned by every public entry point
"""
