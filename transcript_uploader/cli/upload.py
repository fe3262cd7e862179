"""Command-line front end for scanning, uploading and deleting transcripts.

Usage::

    python -m transcript_uploader.cli scan /data/CorpusX
    python -m transcript_uploader.cli upload /data/CorpusX --batch --report run.csv
    python -m transcript_uploader.cli upload interview1.eaf interview1.wav
    python -m transcript_uploader.cli delete /data/CorpusX --yes

Every command first classifies the given files and directories, then asks
the service which transcripts already exist.  ``upload`` runs the upload
protocol for each transcript; in interactive mode any parameter the
uploader cannot fill in itself is asked for on stdin.  Batch runs write a
CSV report when the run (including server-side processing) is over.

Exit codes: 0 on success, 1 if any entry failed, 2 if the run could not
start (bad configuration, service unreachable, nothing to do).
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from transcript_uploader.config.loader import load_settings
from transcript_uploader.models.entry import Entry, EntryState
from transcript_uploader.models.service import Parameter
from transcript_uploader.pipeline.progress_tracker import ProgressEvent
from transcript_uploader.pipeline.session import UploadSession, build_session
from transcript_uploader.pipeline.upload_orchestrator import KNOWN_PARAMETERS
from transcript_uploader.services.report_generator import report_file_name
from transcript_uploader.utils.errors import ConfigurationError, UploaderError
from transcript_uploader.utils.logging import configure_logging

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_PRECONDITION = 2

_TRUE_ANSWERS = {"true", "yes", "y", "1", "on"}
_FALSE_ANSWERS = {"false", "no", "n", "0", "off"}


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_entries(entries: list[Entry]) -> str:
    """Render entries as a fixed-width table."""
    rows = [("Transcript", "Media", "Corpus", "Episode", "Type", "Exists")]
    for entry in entries:
        rows.append(
            (
                entry.transcript_file.name if entry.transcript_file else "-",
                ", ".join(entry.media_file_names()) or "-",
                entry.corpus or "-",
                entry.episode or "-",
                entry.transcript_type or "-",
                {True: "yes", False: "no", None: "?"}[entry.exists],
            )
        )
    widths = [max(len(row[i]) for row in rows) for i in range(len(rows[0]))]
    return "\n".join(
        "  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip()
        for row in rows
    )


def _print_progress(event: ProgressEvent) -> None:
    if event.kind != "entry" or event.state is None:
        return
    line = f"{event.entry_id}: {event.state.value} {event.progress:.0f}%"
    if event.status:
        line += f"  {event.status.splitlines()[0]}"
    print(line)


def _state_printer() -> Callable[[ProgressEvent], None]:
    """Print an entry's progress only when its state changes."""
    last_states: dict[str, Any] = {}

    def _on_progress(event: ProgressEvent) -> None:
        if event.kind == "entry" and last_states.get(event.entry_id) is event.state:
            return
        last_states[event.entry_id] = event.state
        _print_progress(event)

    return _on_progress


# ---------------------------------------------------------------------------
# Interactive parameter review
# ---------------------------------------------------------------------------


def _coerce(parameter: Parameter, answer: str) -> Any:
    if isinstance(parameter.value, bool) or "boolean" in parameter.type.lower():
        lowered = answer.lower()
        if lowered in _TRUE_ANSWERS:
            return True
        if lowered in _FALSE_ANSWERS:
            return False
        raise ValueError(f"expected yes or no, got {answer!r}")
    if parameter.possible_values and answer not in [str(v) for v in parameter.possible_values]:
        raise ValueError(f"expected one of {', '.join(map(str, parameter.possible_values))}")
    return answer


def ask_parameters(
    entry_id: str,
    parameters: list[Parameter],
    input_fn: Callable[[str], str] = input,
) -> dict[str, Any] | None:
    """Prompt for every parameter the uploader could not fill in.

    Returns
    -------
    dict or None
        The chosen values by parameter name, or ``None`` to skip the entry.
    """
    print(f"\n{entry_id} needs parameters (press Enter to keep the default):")
    values: dict[str, Any] = {}
    for parameter in parameters:
        if parameter.name in KNOWN_PARAMETERS:
            continue
        label = parameter.label or parameter.name
        if parameter.hint:
            print(f"  {parameter.hint}")
        if parameter.possible_values:
            print(f"  options: {', '.join(map(str, parameter.possible_values))}")
        while True:
            answer = input_fn(f"  {label} [{parameter.value_text()}]: ").strip()
            if not answer:
                break
            try:
                values[parameter.name] = _coerce(parameter, answer)
                break
            except ValueError as exc:
                print(f"  {exc}")
    answer = input_fn(f"Upload {entry_id}? [Y/n] ").strip().lower()
    if answer in _FALSE_ANSWERS:
        return None
    return values


def _parameter_prompter(
    session: UploadSession, input_fn: Callable[[str], str] = input
) -> Callable:
    async def _on_review(entry_id: str, parameters: list[Parameter]) -> None:
        values = await asyncio.to_thread(ask_parameters, entry_id, parameters, input_fn)
        if values is None:
            session.skip_entry(entry_id)
        else:
            session.confirm_parameters(entry_id, values)

    return _on_review


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _prepare(session: UploadSession, paths: list[str]) -> list[Entry]:
    await session.load_vocabulary()
    missing = [path for path in paths if not Path(path).exists()]
    for path in missing:
        print(f"Warning: {path} does not exist", file=sys.stderr)
    return await session.add_paths(path for path in paths if path not in missing)


async def _handle_scan(args: argparse.Namespace, session: UploadSession) -> int:
    entries = await _prepare(session, args.paths)
    print(format_entries(session.registry.entries()))
    print(f"\n{len(entries)} entries, {sum(1 for e in entries if e.exists)} already uploaded")
    return EXIT_OK


async def _handle_upload(
    args: argparse.Namespace,
    session: UploadSession,
    input_fn: Callable[[str], str] = input,
) -> int:
    await _prepare(session, args.paths)
    if args.skip_existing:
        removed = session.clear(existing=True, new=False)
        if removed:
            print(f"Skipping {removed} transcripts that already exist")

    batch = args.batch or session.settings.batch_mode
    report_path = Path(args.report) if args.report else None
    if batch and report_path is None:
        report_path = Path(report_file_name())

    def _write_report() -> None:
        report_path.write_text(session.report(), encoding="utf-8")
        print(f"Report written to {report_path}")

    session.tracker.register_listener(_state_printer())
    if batch:
        session.on_run_complete = _write_report
    else:
        session.gate.register_listener(_parameter_prompter(session, input_fn))

    await session.upload(batch_mode=batch)
    if not batch and report_path is not None:
        _write_report()

    failed = [e for e in session.registry if e.state is EntryState.FAILED or e.errors]
    if failed:
        print(f"\n{len(failed)} entries had errors:", file=sys.stderr)
        for entry in failed:
            print(f"  {entry.id}: {'; '.join(entry.errors) or entry.status}", file=sys.stderr)
        return EXIT_FAILURES
    return EXIT_OK


async def _handle_delete(
    args: argparse.Namespace,
    session: UploadSession,
    input_fn: Callable[[str], str] = input,
) -> int:
    await _prepare(session, args.paths)
    existing = [e for e in session.registry if e.exists]
    print(format_entries(existing))
    if existing and not args.yes:
        answer = input_fn(f"Delete {len(existing)} transcripts from the service? [y/N] ")
        if answer.strip().lower() not in _TRUE_ANSWERS:
            print("Aborted.")
            return EXIT_OK

    session.tracker.register_listener(_state_printer())
    await session.delete()
    failed = [e for e in existing if e.state is EntryState.FAILED]
    if failed:
        for entry in failed:
            print(f"  {entry.id}: {'; '.join(entry.errors)}", file=sys.stderr)
        return EXIT_FAILURES
    return EXIT_OK


async def run_command(
    args: argparse.Namespace,
    session: UploadSession,
    input_fn: Callable[[str], str] = input,
) -> int:
    """Dispatch a parsed command against *session*; returns the exit code."""
    try:
        if args.command == "scan":
            return await _handle_scan(args, session)
        if args.command == "upload":
            return await _handle_upload(args, session, input_fn)
        if args.command == "delete":
            return await _handle_delete(args, session, input_fn)
    except UploaderError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_PRECONDITION
    raise ValueError(f"Unknown command: {args.command}")


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the uploader CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m transcript_uploader.cli",
        description="Upload transcripts and their media to a corpus-management service.",
    )
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="YAML configuration file (default: config/config.yaml)",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only log warnings and errors.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- scan --
    scan_parser = subparsers.add_parser(
        "scan", help="Classify files and show which transcripts already exist"
    )
    scan_parser.add_argument("paths", nargs="+", help="Files or directories")

    # -- upload --
    upload_parser = subparsers.add_parser("upload", help="Upload transcripts and media")
    upload_parser.add_argument("paths", nargs="+", help="Files or directories")
    upload_parser.add_argument(
        "--batch",
        action="store_true",
        help="Use default parameters and keep going past failures",
    )
    upload_parser.add_argument("--report", help="Write the CSV run report to this file")
    upload_parser.add_argument(
        "--skip-existing",
        action="store_true",
        dest="skip_existing",
        help="Leave out transcripts that already exist on the service",
    )

    # -- delete --
    delete_parser = subparsers.add_parser(
        "delete", help="Delete the given transcripts from the service"
    )
    delete_parser.add_argument("paths", nargs="+", help="Files or directories")
    delete_parser.add_argument(
        "--yes", "-y", action="store_true", help="Skip confirmation prompt"
    )

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _main(args: argparse.Namespace) -> int:
    try:
        settings = load_settings(args.config)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_PRECONDITION

    configure_logging(
        log_level="WARNING" if args.quiet else settings.log_level,
        json_output=(settings.app_env == "production"),
    )
    session = build_session(settings)
    try:
        return await run_command(args, session)
    finally:
        await session.close()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the uploader."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(EXIT_PRECONDITION)

    sys.exit(asyncio.run(_main(args)))


if __name__ == "__main__":
    main()
