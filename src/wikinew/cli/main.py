import contextlib
import os
from pathlib import Path
from typing import Dict, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from wikinew.cli.shared_flags import site_options
from wikinew.core.domain.entities import (
    CanonicalUI,
    Committed,
    Conflict,
    CreateRequestResult,
    Incomplete,
    LegacyUI,
    NewNode,
    ScopeViolation,
    TemplateProviderRecord,
)
from wikinew.core.services.error_codes import ErrorCode, WikinewError
from wikinew.core.services.exit_codes import (
    EX_CANTCREAT,
    EX_INCOMPLETE,
    EX_SUCCESS,
    exit_code_for_error,
)
from wikinew.core.services.observability import get_current_run_id
from wikinew.core.services.output_formatter import (
    doc_to_str,
    error_to_dict,
    format_envelope,
    format_error_envelope,
    outcome_kind,
    outcome_to_dict,
    provider_to_dict,
)
from wikinew.core.services.references import serialize_space
from wikinew.core.use_cases.create_request import CreateRequestUseCase
from wikinew.core.use_cases.normalize_input import KNOWN_PARAMETERS

console = Console()

_MODE_NAMES = {NewNode: "new_node", CanonicalUI: "canonical", LegacyUI: "legacy"}


def get_console() -> Console:
    """Helper to get the rich console from context if available."""
    ctx = click.get_current_context(silent=True)
    if ctx and isinstance(ctx.obj, dict) and "console" in ctx.obj:
        return ctx.obj["console"]
    return console


def _write_output(output_str: str, output: Optional[str] = None, append: bool = False) -> None:
    """Write output to stdout or to a file if requested."""
    if output:
        try:
            with Path(output).open("a" if append else "w", encoding="utf-8") as handle:
                handle.write(output_str if output_str.endswith("\n") else output_str + "\n")
        except OSError as exc:
            click.echo(f"Error writing output file '{output}': {exc}", err=True)
            raise SystemExit(EX_CANTCREAT)
        return
    click.echo(output_str)


@contextlib.contextmanager
def maybe_capture(output: Optional[str], format: str):
    """Capture console output if output file is specified and format is text."""
    if format == "text" and output:
        with get_console().capture() as capture:
            yield
        captured_text = capture.get()
        if captured_text.strip():
            _write_output(captured_text, output=output, append=True)
    else:
        yield


def _md_escape(value: object) -> str:
    text = "" if value is None else str(value)
    return text.replace("\\", "\\\\").replace("|", "\\|").replace("\n", "<br>")


def _md_table(headers: list[str], rows: list[list[object]]) -> str:
    head = "| " + " | ".join(_md_escape(h) for h in headers) + " |"
    sep = "| " + " | ".join(["---"] * len(headers)) + " |"
    body = ["| " + " | ".join(_md_escape(c) for c in row) + " |" for row in rows]
    return "\n".join([head, sep, *body])


@contextlib.contextmanager
def command_output_handler(
    command_name: str,
    format: str,
    output: Optional[str],
    include_timestamp: bool,
    run_id: str,
    root_path: Optional[Path] = None,
):
    """Centralized error handling and output formatting for CLI commands."""
    try:
        yield
    except WikinewError as e:
        if format == "json":
            _write_output(
                format_error_envelope(
                    command=command_name,
                    root=str(root_path) if root_path else ".",
                    error_code=e.code,
                    message=e.message,
                    details=e.details,
                    include_timestamp=include_timestamp,
                    run_id=run_id,
                ),
                output,
            )
        elif format == "md":
            _write_output(
                f"# Error\n\n- Code: {e.code.value}\n- Message: {_md_escape(e.message)}\n",
                output,
            )
        else:
            with maybe_capture(output, format):
                get_console().print(f"[bold red][ERROR {e.code.value}] {e.message}[/bold red]")
        raise SystemExit(exit_code_for_error(e.code))
    except SystemExit:
        raise
    except Exception as e:
        safe_msg = "An unexpected internal error occurred."
        if format == "json":
            _write_output(
                format_error_envelope(
                    command=command_name,
                    root=str(root_path) if root_path else ".",
                    error_code=ErrorCode.UNKNOWN_ERROR,
                    message=safe_msg,
                    details={"internal_error": str(e)},
                    include_timestamp=include_timestamp,
                    run_id=run_id,
                ),
                output,
            )
        elif format == "md":
            _write_output(f"# Error\n\n- Code: UNKNOWN_ERROR\n- Message: {safe_msg}\n", output)
        else:
            with maybe_capture(output, format):
                get_console().print(f"[bold red][ERROR UNKNOWN_ERROR] {safe_msg}[/bold red]")

        # Always log the real error to stderr for operators
        click.echo(f"INTERNAL ERROR: {e}", err=True)
        raise SystemExit(exit_code_for_error(ErrorCode.UNKNOWN_ERROR))


def validate_root_path(root_path: Path) -> None:
    if not root_path.exists():
        raise WikinewError(
            ErrorCode.CONFIG_MISSING,
            f"Path does not exist: {root_path}",
            {"path": str(root_path), "reason": "not_found"},
        )
    if not root_path.is_dir():
        raise WikinewError(
            ErrorCode.CONFIG_MISSING,
            f"Path is not a directory: {root_path}",
            {"path": str(root_path), "reason": "not_directory"},
        )


def parse_params(raw_params: Tuple[str, ...]) -> Dict[str, str]:
    """Turn repeated NAME=VALUE options into a request parameter mapping."""
    params: Dict[str, str] = {}
    for item in raw_params:
        name, sep, value = item.partition("=")
        if not sep:
            raise WikinewError(
                ErrorCode.INVALID_PARAMETER,
                f"Parameter must look like NAME=VALUE: {item!r}",
                {"parameter": item},
            )
        if name not in KNOWN_PARAMETERS:
            raise WikinewError(
                ErrorCode.INVALID_PARAMETER,
                f"Unknown request parameter: {name!r}",
                {"parameter": name, "valid": list(KNOWN_PARAMETERS)},
            )
        params[name] = value
    return params


def exit_code_for_result(result: CreateRequestResult) -> int:
    outcome = result.outcome
    if isinstance(outcome, Committed):
        return EX_SUCCESS
    if isinstance(outcome, Incomplete):
        return EX_INCOMPLETE
    if outcome.error is not None:
        return exit_code_for_error(outcome.error.code)
    if isinstance(outcome, ScopeViolation):
        return exit_code_for_error(ErrorCode.TEMPLATE_NOT_AVAILABLE)
    return exit_code_for_error(ErrorCode.DOCUMENT_NOT_EMPTY)


def _result_data(result: CreateRequestResult) -> dict:
    plan = result.plan
    data = outcome_to_dict(result.outcome, result.edit_target)
    data["current"] = doc_to_str(result.current)
    data["current_exists"] = result.current_exists
    data["mode"] = _MODE_NAMES[type(result.mode)]
    data["plan"] = {
        "parent_space": serialize_space(plan.parent_space) if plan.parent_space else None,
        "leaf_name": plan.leaf_name,
        "is_container": plan.is_container,
    }
    return data


def _print_candidates(candidates: list[TemplateProviderRecord]) -> None:
    table = Table(title="Available template providers")
    table.add_column("Provider")
    table.add_column("Template")
    table.add_column("Allowed scopes")
    for record in candidates:
        table.add_row(
            doc_to_str(record.reference) or "",
            doc_to_str(record.template_ref) or "",
            ", ".join(record.allowed_scopes) or "(any)",
        )
    get_console().print(table)


def _print_result_text(result: CreateRequestResult) -> None:
    out = get_console()
    outcome = result.outcome
    if isinstance(outcome, Committed):
        out.print(f"[bold green]Create:[/bold green] {doc_to_str(outcome.target)}")
        if outcome.template is not None:
            out.print(f"Template: {doc_to_str(outcome.template)}")
        if result.edit_target is not None:
            edit = result.edit_target
            out.print(f"Edit: {edit.space_path} / {edit.page} / {edit.action}?{edit.query}")
    elif isinstance(outcome, Incomplete):
        out.print(f"[bold yellow]Incomplete:[/bold yellow] {outcome.reason.value}")
        if outcome.target is not None:
            out.print(f"Target: {doc_to_str(outcome.target)}")
        if outcome.candidates:
            _print_candidates(outcome.candidates)
    elif isinstance(outcome, (ScopeViolation, Conflict)) and outcome.error is not None:
        out.print(f"[bold red][{outcome.error.code.value}] {outcome.error.message}[/bold red]")


def _result_md(result: CreateRequestResult) -> str:
    outcome = result.outcome
    lines = [
        "# wikinew resolve",
        "",
        f"- Current: `{doc_to_str(result.current)}`",
        f"- Mode: {_MODE_NAMES[type(result.mode)]}",
        f"- Outcome: {outcome_kind(outcome)}",
    ]
    if isinstance(outcome, Committed):
        lines.append(f"- Target: `{doc_to_str(outcome.target)}`")
        lines.append(f"- Template: `{doc_to_str(outcome.template) or ''}`")
    elif isinstance(outcome, Incomplete):
        lines.append(f"- Reason: {outcome.reason.value}")
        if outcome.candidates:
            lines.extend(["", _md_table(
                ["Provider", "Template", "Allowed scopes"],
                [
                    [doc_to_str(c.reference), doc_to_str(c.template_ref), ", ".join(c.allowed_scopes)]
                    for c in outcome.candidates
                ],
            )])
    elif outcome.error is not None:
        lines.append(f"- Error: {outcome.error.code.value}: {_md_escape(outcome.error.message)}")
    return "\n".join(lines) + "\n"


@click.group()
@click.version_option(package_name="wikinew", prog_name="wikinew")
@click.option("--no-color", is_flag=True, default=False, help="Disable ANSI colors in text output.")
@click.option("--verbose", is_flag=True, default=False, help="Enable verbose debug logging.")
@click.pass_context
def cli(ctx: click.Context, no_color: bool, verbose: bool):
    """Resolve where a new wiki page goes and which template seeds it."""
    if verbose:
        previous_debug = os.environ.get("WIKINEW_DEBUG")
        os.environ["WIKINEW_DEBUG"] = "1"

        def _restore_debug() -> None:
            if previous_debug is None:
                os.environ.pop("WIKINEW_DEBUG", None)
            else:
                os.environ["WIKINEW_DEBUG"] = previous_debug

        ctx.call_on_close(_restore_debug)

    ctx.ensure_object(dict)
    ctx.obj["console"] = Console(no_color=no_color)


@cli.command()
@click.argument("current")
@click.option(
    "-p",
    "--param",
    "params",
    multiple=True,
    help="Request parameter as NAME=VALUE (repeatable), e.g. -p spaceReference=X -p name=Y",
)
@click.option(
    "--new/--existing",
    "is_new",
    default=None,
    help="Treat CURRENT as new or existing instead of asking the content store.",
)
@site_options()
def resolve(current, params, is_new, root, format, output, include_timestamp):
    """Resolve a create request made from the CURRENT document."""
    run_id = get_current_run_id()
    root_path = Path(root).resolve()

    with command_output_handler("resolve", format, output, include_timestamp, run_id, root_path):
        validate_root_path(root_path)
        request_params = parse_params(params)
        use_case = CreateRequestUseCase(root_dir=str(root_path))
        exists = None if is_new is None else not is_new
        result = use_case.execute(current, request_params, exists=exists)

        if format == "json":
            outcome = result.outcome
            error = None
            if isinstance(outcome, (ScopeViolation, Conflict)) and outcome.error is not None:
                error = error_to_dict(outcome.error)
            _write_output(
                format_envelope(
                    command="resolve",
                    root=root_path,
                    success=isinstance(outcome, Committed),
                    outcome=outcome_kind(outcome),
                    data=_result_data(result),
                    error=error,
                    include_timestamp=include_timestamp,
                    run_id=run_id,
                ),
                output,
            )
        elif format == "md":
            _write_output(_result_md(result), output)
        else:
            with maybe_capture(output, format):
                _print_result_text(result)

    code = exit_code_for_result(result)
    if code != EX_SUCCESS:
        raise SystemExit(code)


@cli.command()
@click.argument("space", required=False, default="")
@site_options()
def providers(space, root, format, output, include_timestamp):
    """List template providers offered when creating inside SPACE (default: top level)."""
    run_id = get_current_run_id()
    root_path = Path(root).resolve()

    with command_output_handler("providers", format, output, include_timestamp, run_id, root_path):
        validate_root_path(root_path)
        use_case = CreateRequestUseCase(root_dir=str(root_path))
        records = use_case.providers(space)

        if format == "json":
            _write_output(
                format_envelope(
                    command="providers",
                    root=root_path,
                    success=True,
                    data={"scope": space, "providers": [provider_to_dict(r) for r in records]},
                    include_timestamp=include_timestamp,
                    run_id=run_id,
                ),
                output,
            )
            return

        if format == "md":
            _write_output(
                "# wikinew providers\n\n"
                + _md_table(
                    ["Provider", "Template", "Allowed scopes"],
                    [
                        [doc_to_str(r.reference), doc_to_str(r.template_ref), ", ".join(r.allowed_scopes)]
                        for r in records
                    ],
                )
                + "\n",
                output,
            )
            return

        with maybe_capture(output, format):
            if not records:
                get_console().print("No template providers available.")
            else:
                _print_candidates(records)


@cli.command("check-conflict")
@click.argument("document")
@site_options()
def check_conflict_command(document, root, format, output, include_timestamp):
    """Check whether DOCUMENT already holds content."""
    run_id = get_current_run_id()
    root_path = Path(root).resolve()

    with command_output_handler("check-conflict", format, output, include_timestamp, run_id, root_path):
        validate_root_path(root_path)
        use_case = CreateRequestUseCase(root_dir=str(root_path))
        conflict = use_case.conflict(document)

        if format == "json":
            _write_output(
                format_envelope(
                    command="check-conflict",
                    root=root_path,
                    success=conflict is None,
                    data={"document": document, "conflict": conflict is not None},
                    error=error_to_dict(conflict.error) if conflict is not None and conflict.error else None,
                    include_timestamp=include_timestamp,
                    run_id=run_id,
                ),
                output,
            )
        elif format == "md":
            status = "conflict" if conflict is not None else "free"
            _write_output(f"# wikinew check-conflict\n\n- Document: `{document}`\n- Status: {status}\n", output)
        else:
            with maybe_capture(output, format):
                if conflict is None:
                    get_console().print(f"[bold green]Free:[/bold green] {document}")
                elif conflict.error is not None:
                    get_console().print(f"[bold red][{conflict.error.code.value}] {conflict.error.message}[/bold red]")

    if conflict is not None:
        raise SystemExit(exit_code_for_error(ErrorCode.DOCUMENT_NOT_EMPTY))


if __name__ == "__main__":
    cli()
