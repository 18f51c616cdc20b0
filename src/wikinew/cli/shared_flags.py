"""Shared Click option decorators for the wikinew CLI.

Centralizes flags that apply across commands so every command accepts the
same --root/--format/--output/--include-timestamp set.
"""

import functools
import os

import click


def format_option():
    """Add --format option (text|json|md)."""

    def decorator(f):
        return click.option(
            "--format",
            "format",
            type=click.Choice(["text", "json", "md"], case_sensitive=False),
            default="text",
            help="Output format (text|json|md).",
        )(f)

    return decorator


def root_option():
    """Add --root option for the site root directory."""

    def decorator(f):
        return click.option(
            "--root",
            default=".",
            help="Root directory of the site (holds wikinew.config.yaml)",
        )(f)

    return decorator


def output_option():
    """Add --output option to write output to a file."""

    def decorator(f):
        return click.option(
            "--output",
            type=click.Path(),
            default=None,
            help="Write output to this file path instead of stdout.",
        )(f)

    return decorator


def include_timestamp_option():
    def decorator(f):
        return click.option(
            "--include-timestamp",
            is_flag=True,
            default=False,
            help="Include ISO 8601 UTC timestamp in JSON output.",
        )(f)

    return decorator


def with_log_silence():
    """Silence log events for JSON or file output unless debug is enabled."""

    def decorator(f):
        @functools.wraps(f)
        def wrapper(*args, **kwargs):
            previous = os.environ.get("WIKINEW_LOG_SILENT")
            silence_logs = os.environ.get("WIKINEW_DEBUG") != "1" and (
                kwargs.get("format") == "json" or bool(kwargs.get("output"))
            )
            changed = False
            if silence_logs and previous != "1":
                os.environ["WIKINEW_LOG_SILENT"] = "1"
                changed = True
            try:
                return f(*args, **kwargs)
            finally:
                if changed:
                    if previous is None:
                        os.environ.pop("WIKINEW_LOG_SILENT", None)
                    else:
                        os.environ["WIKINEW_LOG_SILENT"] = previous

        return wrapper

    return decorator


def site_options():
    """Composite decorator applying --root, --format, --output, --include-timestamp.

    Usage::

        @cli.command()
        @site_options()
        def my_command(root, format, output, include_timestamp, ...):
            ...
    """

    def decorator(f):
        f = format_option()(f)
        f = output_option()(f)
        f = include_timestamp_option()(f)
        f = with_log_silence()(f)
        f = root_option()(f)
        return f

    return decorator
