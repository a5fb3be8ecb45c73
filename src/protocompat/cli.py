"""protocompat CLI: schema compatibility commands."""

import argparse
import signal
import sys
import threading
from importlib.metadata import version as get_version, PackageNotFoundError
from pathlib import Path


def main():
    """Main CLI entry point for protocompat commands."""
    try:
        protocompat_version = get_version("protocompat")
    except PackageNotFoundError:
        protocompat_version = "dev"

    parser = argparse.ArgumentParser(
        prog="protocompat",
        description="protocompat: Backward/forward compatibility checks for Protocol Buffers schemas"
    )
    parser.add_argument("--version", action="version", version=f"protocompat {protocompat_version}")
    # Common arguments
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress all non-error output."
    )
    parent_parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log progress and debug details to the terminal."
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # check command
    check_parser = subparsers.add_parser(
        "check",
        help="Check a candidate schema snapshot against a base snapshot",
        parents=[parent_parser]
    )
    check_parser.add_argument(
        "--base",
        type=Path,
        required=True,
        help="Path to the base snapshot (JSON or binary descriptor set)"
    )
    check_parser.add_argument(
        "--candidate",
        type=Path,
        required=True,
        help="Path to the candidate snapshot (JSON or binary descriptor set)"
    )
    check_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to checker configuration JSON"
    )
    check_parser.add_argument(
        "--format",
        dest="fmt",
        choices=["text", "jsonl", "json"],
        default="text",
        help="Report format: text (human), jsonl (one record per finding + summary), json (single document)"
    )
    check_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the report to this file instead of stdout"
    )
    check_parser.add_argument(
        "--treat-advisory-as-error",
        action="store_true",
        default=None,
        help="Fail the verdict on advisory findings too"
    )
    check_parser.add_argument(
        "--field-count-threshold",
        type=int,
        default=None,
        help="Live field count above which R-FIELD-COUNT fires (default 200)"
    )
    check_parser.add_argument(
        "--narrowing-severity",
        choices=["breaking", "advisory"],
        default=None,
        help="Severity of wire-compatible integer narrowing (default breaking)"
    )
    check_parser.add_argument(
        "--allow",
        action="append",
        default=None,
        metavar="RULE",
        help="Only evaluate this rule id (repeatable)"
    )
    check_parser.add_argument(
        "--deny",
        action="append",
        default=None,
        metavar="RULE",
        help="Never evaluate this rule id (repeatable)"
    )
    check_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads for per-type evaluation (default: one per core)"
    )

    # verify command (artifact validation)
    verify_parser = subparsers.add_parser(
        "verify",
        help="Verify artifacts"
    )
    verify_subparsers = verify_parser.add_subparsers(dest="verify_command", help="Verify subcommands")

    verify_snapshot_parser = verify_subparsers.add_parser(
        "snapshot",
        help="Verify a schema snapshot",
        parents=[parent_parser]
    )
    verify_snapshot_parser.add_argument(
        "snapshot_path",
        type=Path,
        help="Path to snapshot (JSON or binary descriptor set)"
    )
    verify_snapshot_parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Output directory for report"
    )

    # rules command
    subparsers.add_parser(
        "rules",
        help="List compatibility rules and their default severities",
        parents=[parent_parser]
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(2)

    from ._internal.logging_utils import configure_split_stream_logging, level_for

    # Machine-readable reports own stdout; keep log lines off it.
    machine_output = args.command == "check" and args.fmt != "text" and args.output is None
    configure_split_stream_logging(
        level=level_for(verbose=getattr(args, "verbose", False), quiet=getattr(args, "quiet", False)),
        info_stream=sys.stderr if machine_output else sys.stdout,
    )

    if args.command == "check":
        # Lazy import: only import the kernel when check is invoked
        from .kernel.config import load_config
        from .kernel.errors import CheckerError
        from .report import EXIT_CANCELLED, EXIT_ERROR, run_check_files

        cancel_event = threading.Event()

        def _on_interrupt(signum, frame):
            cancel_event.set()

        previous_handler = signal.signal(signal.SIGINT, _on_interrupt)
        try:
            config = load_config(
                args.config,
                treat_advisory_as_error=args.treat_advisory_as_error,
                field_count_threshold=args.field_count_threshold,
                narrowing_severity=args.narrowing_severity,
                rule_allowlist=args.allow,
                rule_denylist=args.deny,
                workers=args.workers,
            )
            exit_code, content = run_check_files(
                args.base.resolve(),
                args.candidate.resolve(),
                config=config,
                fmt=args.fmt,
                output_path=args.output.resolve() if args.output else None,
                cancel_event=cancel_event,
            )

            if not args.quiet:
                if args.output is None:
                    sys.stdout.write(content)
                else:
                    print("[OK] Check complete")
                    print(f"  Report: {args.output}")
            if exit_code == EXIT_CANCELLED:
                print("Check interrupted: verdict unknown", file=sys.stderr)
            sys.exit(exit_code)
        except CheckerError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(EXIT_ERROR)
        except Exception as e:
            print(f"Unexpected error: {e}", file=sys.stderr)
            import traceback
            traceback.print_exc()
            sys.exit(EXIT_ERROR)
        finally:
            signal.signal(signal.SIGINT, previous_handler)
    elif args.command == "verify" and args.verify_command == "snapshot":
        try:
            from .api import validate
            from ._internal.canonical_json import canonical_dumps

            result = validate(args.snapshot_path.resolve())

            if args.output_dir is not None:
                output_dir = args.output_dir.resolve()
                output_dir.mkdir(parents=True, exist_ok=True)
                report_out = output_dir / "verify_snapshot.json"
                report_out.write_text(canonical_dumps(result.model_dump()) + "\n", encoding="utf-8")
                if not args.quiet:
                    print(f"  Report: {report_out}")
            if not args.quiet:
                status = "OK" if result.ok else "FAILED"
                print(f"[{status}] Verification complete")
                print(f"  Errors: {len(result.errors)}")
                for issue in result.errors:
                    print(f"    - {issue.code}: {issue.message}")
                print(f"  Warnings: {len(result.warnings)}")
                for issue in result.warnings:
                    print(f"    - {issue.code}: {issue.message}")
            sys.exit(0 if result.ok else 2)
        except Exception as e:
            print(f"Unexpected error: {e}", file=sys.stderr)
            import traceback
            traceback.print_exc()
            sys.exit(2)
    elif args.command == "rules":
        from .api import list_rules

        if not args.quiet:
            for info in list_rules():
                severities = ", ".join(
                    sev.value if variant == "default" else f"{variant}: {sev.value}"
                    for variant, sev in info.severities.items()
                )
                print(f"{info.rule_id:<26} {severities:<40} {info.description}")
        sys.exit(0)
    elif args.command == "verify":
        verify_parser.print_help()
        sys.exit(2)
    else:
        parser.print_help()
        sys.exit(2)


if __name__ == "__main__":
    main()
