"""Run-scoped event log for create requests.

A request emits one timed `create_request` event, `debug.*` trace events
(input_normalized, plan_resolved, config_loaded) when WIKINEW_DEBUG=1, and a
`lookup_failed` warning each time a store or registry failure is recovered as
an absent result. Events go to stderr so they never mix with the JSON
envelope on stdout. WIKINEW_LOG_FORMAT picks json or text lines; the CLI sets
WIKINEW_LOG_SILENT=1 for JSON or file output.
"""

import json
import os
import sys
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Generator, Optional

from wikinew.core.services.error_codes import ErrorCode, WikinewError

_current_run_id: Optional[str] = None


def get_run_id() -> str:
    """Return WIKINEW_RUN_ID when it is a valid UUIDv4, else a fresh UUIDv4."""
    env_value = os.environ.get("WIKINEW_RUN_ID")
    if env_value:
        try:
            parsed = uuid.UUID(env_value)
        except ValueError:
            parsed = None
        if parsed is not None and parsed.version == 4:
            return str(parsed)
    return str(uuid.uuid4())


def get_current_run_id() -> str:
    """Get the current run ID, creating one if needed."""
    global _current_run_id
    if _current_run_id is None:
        _current_run_id = get_run_id()
    return _current_run_id


def get_log_format() -> str:
    """Get the configured log format (json or text)."""
    return os.environ.get("WIKINEW_LOG_FORMAT", "text")


def is_debug_enabled() -> bool:
    """Return True when trace-level debug logging is enabled."""
    return os.environ.get("WIKINEW_DEBUG") == "1"


def is_log_silenced() -> bool:
    return os.environ.get("WIKINEW_LOG_SILENT") == "1"


def log_debug(
    operation: str,
    details: Optional[Dict[str, Any]] = None,
    run_id: Optional[str] = None,
    duration_ms: Optional[float] = None,
) -> None:
    """Emit a trace-level debug log when WIKINEW_DEBUG=1."""
    if not is_debug_enabled():
        return
    log_event(
        operation=operation,
        success=True,
        duration_ms=duration_ms,
        details=details,
        run_id=run_id,
        level="debug",
    )


def _write_stderr(message: str) -> None:
    """Write message to stderr (never stdout)."""
    if is_log_silenced():
        return
    print(message, file=sys.stderr, flush=True)


def log_event(
    operation: str,
    success: bool,
    duration_ms: Optional[float] = None,
    error_code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    run_id: Optional[str] = None,
    level: Optional[str] = None,
) -> None:
    """Write one event line to stderr.

    Text lines read `[run_id] timestamp operation [level] OK|FAILED (ms) [code]
    {details}`; JSON lines carry the same fields under their own keys, with
    the optional ones left out when unset.
    """
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "run_id": run_id or get_current_run_id(),
        "operation": operation,
        "success": success,
    }

    if level:
        entry["level"] = level

    rounded_duration: Optional[float] = None
    if duration_ms is not None:
        rounded_duration = round(duration_ms, 2)
        entry["duration_ms"] = rounded_duration

    if error_code:
        entry["error_code"] = error_code

    if details:
        entry["details"] = details

    if get_log_format() == "json":
        _write_stderr(json.dumps(entry, separators=(",", ":"), default=str))
    else:
        parts = [f"[{entry['run_id']}]", entry["timestamp"], operation]
        if level:
            parts.append(f"[{level}]")
        parts.append("OK" if success else "FAILED")
        if rounded_duration is not None:
            parts.append(f"({rounded_duration:.2f}ms)")
        if error_code:
            parts.append(f"[{error_code}]")
        if details:
            parts.append(json.dumps(details, default=str))
        _write_stderr(" ".join(parts))


def log_lookup_failure(collaborator: str, target: Any, exc: BaseException) -> None:
    """Record a collaborator failure that was recovered as an absent result."""
    log_event(
        operation="lookup_failed",
        success=False,
        error_code=ErrorCode.UNKNOWN_ERROR.value,
        details={"collaborator": collaborator, "target": str(target), "reason": str(exc)},
        level="warning",
    )


@contextmanager
def log_operation(
    operation: str,
    details: Optional[Dict[str, Any]] = None,
    run_id: Optional[str] = None,
) -> Generator[Dict[str, Any], None, None]:
    """Time a block and log it as one event, failed if the block raises.

    The yielded dict carries the event details; CreateRequestUseCase.execute
    adds the outcome kind and the committed target to it. A WikinewError keeps
    its code on the failure event, anything else is logged as UNKNOWN_ERROR.
    """
    start_time = time.monotonic()
    context: Dict[str, Any] = {"details": dict(details) if details else {}}
    error_code: Optional[str] = None

    try:
        yield context
        duration_ms = (time.monotonic() - start_time) * 1000
        log_event(
            operation=operation,
            success=True,
            duration_ms=duration_ms,
            details=context.get("details"),
            run_id=run_id,
        )
    except Exception as e:
        duration_ms = (time.monotonic() - start_time) * 1000
        if isinstance(e, WikinewError):
            error_code = e.code.value
        else:
            error_code = ErrorCode.UNKNOWN_ERROR.value
        log_event(
            operation=operation,
            success=False,
            duration_ms=duration_ms,
            error_code=error_code,
            details=context.get("details"),
            run_id=run_id,
        )
        raise
