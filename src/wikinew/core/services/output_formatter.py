"""JSON output envelope formatter for the wikinew CLI.

Envelopes are deterministic, single-line JSON documents:
- Canonical ordering of top-level keys, recursive key sorting below them
- warnings and advice always present (default []), sorted by (code, message)
- data always present (defaults to {})
- timestamp only included when explicitly requested
- run_id is a full UUIDv4
- root is always an absolute path
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import click
from jsonschema import Draft7Validator

from wikinew.core.domain.entities import (
    Committed,
    Conflict,
    DocRef,
    EditTarget,
    Incomplete,
    Outcome,
    ScopeViolation,
    TemplateProviderRecord,
)
from wikinew.core.services.error_codes import ErrorCode, WikinewError
from wikinew.core.services.references import serialize_document

OUTPUT_SCHEMA_VERSION = "1.0"

_ENVELOPE_KEY_ORDER = [
    "output_schema_version",
    "success",
    "command",
    "run_id",
    "timestamp",
    "root",
    "outcome",
    "data",
    "warnings",
    "advice",
    "error",
]

_ISSUE_SCHEMA = {
    "type": "object",
    "required": ["code", "message"],
    "properties": {"code": {"type": "string"}, "message": {"type": "string"}},
}

ENVELOPE_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "wikinew output envelope",
    "type": "object",
    "required": ["output_schema_version", "success", "command", "run_id", "root", "data"],
    "properties": {
        "output_schema_version": {"const": OUTPUT_SCHEMA_VERSION},
        "success": {"type": "boolean"},
        "command": {"type": "string", "minLength": 1},
        "run_id": {"type": "string"},
        "timestamp": {"type": "string"},
        "root": {"type": "string"},
        "outcome": {"enum": ["committed", "incomplete", "scope_violation", "conflict"]},
        "data": {"type": "object"},
        "warnings": {"type": "array", "items": _ISSUE_SCHEMA},
        "advice": {"type": "array", "items": _ISSUE_SCHEMA},
        "error": {
            "type": "object",
            "required": ["code", "message"],
            "properties": {
                "code": {"enum": [c.value for c in ErrorCode]},
                "message": {"type": "string"},
                "details": {"type": "object"},
            },
        },
    },
}

_SCHEMA_VALIDATOR = Draft7Validator(ENVELOPE_SCHEMA)

logger = logging.getLogger(__name__)


def _validate_envelope(envelope: Dict[str, Any]) -> None:
    errors = sorted(_SCHEMA_VALIDATOR.iter_errors(envelope), key=str)
    if errors:
        messages = "; ".join(error.message for error in errors[:3])
        raise ValueError(f"output envelope failed schema validation: {messages}")


def _sort_key_index(key: str) -> tuple[int, str]:
    """Return a sort key that preserves canonical order for known keys."""
    try:
        return (_ENVELOPE_KEY_ORDER.index(key), key)
    except ValueError:
        return (len(_ENVELOPE_KEY_ORDER), key)


def _recursively_sort_keys(obj: Any) -> Any:
    """Recursively sort dictionary keys for deterministic output."""
    if isinstance(obj, dict):
        return {k: _recursively_sort_keys(v) for k, v in sorted(obj.items())}
    if isinstance(obj, list):
        return [_recursively_sort_keys(item) for item in obj]
    return obj


def _sort_issues(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(items, key=lambda a: (a.get("code", ""), a.get("message", "")))


def generate_run_id() -> str:
    return str(uuid.uuid4())


def _normalize_run_id(run_id: Optional[str]) -> str:
    """Validate or generate a UUIDv4 run_id."""
    if run_id is None:
        return generate_run_id()
    try:
        parsed = uuid.UUID(str(run_id))
    except (ValueError, AttributeError, TypeError):
        return generate_run_id()
    if parsed.version != 4:
        return generate_run_id()
    return str(parsed)


def format_envelope(
    *,
    command: str,
    root: str | Path,
    success: bool,
    outcome: Optional[str] = None,
    data: dict | None = None,
    warnings: list | None = None,
    advice: list | None = None,
    error: dict | None = None,
    include_timestamp: bool = False,
    run_id: str | None = None,
) -> str:
    """Build a JSON envelope as a deterministic single-line string.

    Args:
        command: CLI subcommand name (e.g. "resolve", "providers").
        root: Site root path (will be resolved to absolute).
        success: Whether the command completed without fatal error.
        outcome: Outcome kind for commands that run the resolver.
        data: Command-specific payload. Defaults to {}.
        warnings: Non-fatal issues. Defaults to [].
        advice: Non-binding recommendations. Defaults to [].
        error: Operational or outcome error object (code, message, optional details).
        include_timestamp: If True, include ISO 8601 UTC timestamp.
        run_id: Override run_id (must be a UUIDv4).

    Returns:
        A single-line JSON string with no trailing newline.
    """
    envelope: dict[str, Any] = {
        "output_schema_version": OUTPUT_SCHEMA_VERSION,
        "success": success,
        "command": command,
        "run_id": _normalize_run_id(run_id),
    }

    if include_timestamp:
        envelope["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    envelope["root"] = Path(root).resolve().as_posix()
    if outcome is not None:
        envelope["outcome"] = outcome
    envelope["data"] = _recursively_sort_keys(data if data is not None else {})
    envelope["warnings"] = [_recursively_sort_keys(w) for w in _sort_issues(warnings or [])]
    envelope["advice"] = [_recursively_sort_keys(a) for a in _sort_issues(advice or [])]

    if error is not None:
        envelope["error"] = _recursively_sort_keys(error)

    ordered: dict[str, Any] = {}
    for key in sorted(envelope.keys(), key=_sort_key_index):
        ordered[key] = envelope[key]

    try:
        _validate_envelope(ordered)
    except ValueError as e:
        logger.exception("Envelope schema validation failed")
        click.echo(f"WARN: Envelope schema validation failed: {e}", err=True)

    return json.dumps(ordered, separators=(",", ":"), default=str)


def format_error_envelope(
    *,
    command: str,
    root: str | Path,
    error_code: ErrorCode,
    message: str,
    details: dict | None = None,
    include_timestamp: bool = False,
    run_id: str | None = None,
) -> str:
    """Build an error envelope for an operational failure."""
    error_obj: dict[str, Any] = {"code": error_code.value, "message": message}
    if details is not None:
        error_obj["details"] = details

    return format_envelope(
        command=command,
        root=root,
        success=False,
        error=error_obj,
        include_timestamp=include_timestamp,
        run_id=run_id,
    )


def doc_to_str(ref: Optional[DocRef]) -> Optional[str]:
    return serialize_document(ref, with_wiki=True) if ref is not None else None


def provider_to_dict(record: TemplateProviderRecord) -> dict[str, Any]:
    return {
        "provider": doc_to_str(record.reference),
        "template": doc_to_str(record.template_ref),
        "allowed_scopes": list(record.allowed_scopes),
    }


def error_to_dict(error: WikinewError) -> dict[str, Any]:
    out: dict[str, Any] = {"code": error.code.value, "message": error.message}
    if error.details is not None:
        out["details"] = error.details
    return out


def outcome_kind(outcome: Outcome) -> str:
    if isinstance(outcome, Committed):
        return "committed"
    if isinstance(outcome, Incomplete):
        return "incomplete"
    if isinstance(outcome, ScopeViolation):
        return "scope_violation"
    if isinstance(outcome, Conflict):
        return "conflict"
    raise TypeError(f"Unsupported outcome: {type(outcome).__name__}")


def outcome_to_dict(outcome: Outcome, edit_target: Optional[EditTarget] = None) -> dict[str, Any]:
    """Payload describing an outcome, for the ``data`` field of an envelope."""
    if isinstance(outcome, Committed):
        data: dict[str, Any] = {
            "target": doc_to_str(outcome.target),
            "template": doc_to_str(outcome.template),
            "title": outcome.title,
            "type": outcome.content_type,
        }
        if edit_target is not None:
            data["edit"] = {
                "space": edit_target.space_path,
                "page": edit_target.page,
                "action": edit_target.action,
                "query": edit_target.query,
            }
        return data
    if isinstance(outcome, Incomplete):
        return {
            "reason": outcome.reason.value,
            "target": doc_to_str(outcome.target),
            "candidates": [provider_to_dict(c) for c in outcome.candidates],
        }
    if isinstance(outcome, ScopeViolation):
        return {
            "provider": provider_to_dict(outcome.provider),
            "scope": outcome.scope,
            "leaf_name": outcome.leaf_name,
            "allowed_scopes": list(outcome.allowed_scopes),
        }
    if isinstance(outcome, Conflict):
        return {"existing": doc_to_str(outcome.existing)}
    raise TypeError(f"Unsupported outcome: {type(outcome).__name__}")
