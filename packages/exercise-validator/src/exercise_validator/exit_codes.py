from __future__ import annotations

# Automated callers only distinguish zero from non-zero; the names below keep
# call sites explicit about why a command failed.
OK = 0
ERR_FAILURE = 1

ERR_USAGE = ERR_FAILURE
ERR_NOT_FOUND = ERR_FAILURE
ERR_CONFIG = ERR_FAILURE
ERR_VALIDATION = ERR_FAILURE
ERR_TIMEOUT = ERR_FAILURE
ERR_EXECUTION = ERR_FAILURE
ERR_INTERNAL = ERR_FAILURE

# Stored in results when a child was killed by the timeout. Signal deaths are
# recorded as 128 + N, so negative codes never come from a real exit.
TIMEOUT_EXIT_CODE = -1


def process_exit_code(code: int) -> int:
    """Map a recorded child exit code onto a valid process exit status."""
    if code < 0:
        return ERR_FAILURE
    return code
