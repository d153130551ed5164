"""
Standard error codes for queue operations.

Usage:
    from services.error_codes import QUEUE_FULL
    from services.result import Result

    if max_size and len(store.queue) >= max_size:
        return Result.fail("Sorry, the level queue is full!", code=QUEUE_FULL)
"""

# General errors
NOT_FOUND = "not_found"

# Submission errors
QUEUE_FULL = "queue_full"
INVALID_CODE = "invalid_code"
ALREADY_QUEUED = "already_queued"
ALREADY_CURRENT = "already_current"
NOT_IN_QUEUE = "not_in_queue"

# Operator errors
NO_CURRENT_ENTRY = "no_current_entry"
MISSING_ARGUMENT = "missing_argument"
INVALID_SUBCOMMAND = "invalid_subcommand"

# Custom code errors
CUSTOM_CODE_EXISTS = "custom_code_exists"

# Persistence errors
SAVE_FAILED = "save_failed"
