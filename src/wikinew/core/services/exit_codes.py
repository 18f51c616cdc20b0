"""Exit code mapping for the wikinew CLI."""

from __future__ import annotations

import os

from wikinew.core.services.error_codes import ErrorCode

EX_SUCCESS = 0
EX_INCOMPLETE = 1
EX_USAGE = getattr(os, "EX_USAGE", 64)
EX_DATAERR = getattr(os, "EX_DATAERR", 65)
EX_NOINPUT = getattr(os, "EX_NOINPUT", 66)
EX_CANTCREAT = getattr(os, "EX_CANTCREAT", 73)


def exit_code_for_error(error_code: ErrorCode) -> int:
    """Map ErrorCode to sysexits-style exit codes."""
    mapping = {
        ErrorCode.INVALID_PARAMETER: EX_USAGE,
        ErrorCode.INVALID_REFERENCE: EX_USAGE,
        ErrorCode.CONFIG_MISSING: EX_NOINPUT,
        ErrorCode.CONFIG_INVALID: EX_NOINPUT,
        ErrorCode.TEMPLATE_NOT_AVAILABLE: EX_DATAERR,
        ErrorCode.DOCUMENT_NOT_EMPTY: EX_CANTCREAT,
        ErrorCode.UNKNOWN_ERROR: EX_DATAERR,
    }
    return mapping.get(error_code, EX_DATAERR)
