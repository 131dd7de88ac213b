from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional

# Stage 2 (`_snapshot`) runs under the target project's interpreter, which may
# lack this tool's own dependencies, so command modules are imported lazily.

DEFAULT_VERSIONS_DIR = "docs/versions"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="swaggerdiff",
        description="Capture OpenAPI snapshots of FastAPI applications and compare them.",
    )
    sub = parser.add_subparsers(dest="command", metavar="{snapshot,list,serve}")
    sub.required = True

    snap = sub.add_parser(
        "snapshot",
        help="Generate a new OpenAPI snapshot from a FastAPI project.",
        description="Generate a new OpenAPI snapshot from a FastAPI project.",
        epilog=(
            "examples:\n"
            "  swaggerdiff snapshot\n"
            "  swaggerdiff snapshot --app myapi.main:app --output docs/versions\n"
            "  swaggerdiff snapshot --project services/orders --project services/billing"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    snap.add_argument(
        "--project",
        action="append",
        default=[],
        metavar="PATH",
        help="Project directory or pyproject.toml. Repeat for multiple projects.",
    )
    snap.add_argument(
        "--app",
        metavar="TARGET",
        help="module:attr or entry script of the application. Single target, skips the build.",
    )
    snap.add_argument("--python", metavar="PATH", help="Interpreter used to load the application.")
    snap.add_argument(
        "-c",
        "--configuration",
        default="Debug",
        metavar="CONFIG",
        help="Build configuration: Debug or Release (Release runs the interpreter with -O).",
    )
    snap.add_argument(
        "--no-build",
        action="store_true",
        help="Skip the build step (assumes the project was already built).",
    )
    snap.add_argument(
        "--output",
        default=DEFAULT_VERSIONS_DIR,
        metavar="DIR",
        help="Output directory for snapshots (relative to each project directory).",
    )
    snap.add_argument(
        "--doc-name",
        metavar="NAME",
        help="Document to snapshot: the sub-application mounted at /NAME, else the root app.",
    )
    snap.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="NAME",
        help="Project names to exclude from auto-discovery. Repeat for multiple.",
    )
    snap.add_argument(
        "--exclude-dir",
        action="append",
        default=[],
        metavar="DIR",
        help="Directory names to exclude from auto-discovery. Repeat for multiple.",
    )
    snap.add_argument("--parallel", type=int, metavar="N", help="Maximum concurrent snapshot processes.")
    snap.add_argument("--timeout", type=float, metavar="SECONDS", help="Application startup timeout.")
    snap.add_argument(
        "--skip-lifespan",
        action="store_true",
        help=(
            "Do not run the application's lifespan startup before reading the document. "
            "Startup otherwise runs with SWAGGERDIFF_DRYRUN=true set; a project can opt out "
            "with [tool.swaggerdiff] lifespan = false."
        ),
    )

    lst = sub.add_parser("list", help="List available OpenAPI snapshots in a directory.")
    lst.add_argument("--dir", default=DEFAULT_VERSIONS_DIR, help="Directory to scan for snapshot files.")

    serve = sub.add_parser("serve", help="Serve the diff UI for a snapshot directory.")
    serve.add_argument("--dir", default=None, help="Snapshot directory.")
    serve.add_argument("--prefix", default=None, help="Route prefix of the UI.")
    # Default to loopback to avoid accidental exposure; override via HOST env or --host.
    serve.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    serve.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))

    # Internal command used by the two-stage subprocess pattern; hidden from help
    internal = sub.add_parser("_snapshot")
    internal.add_argument("--app", required=True)
    internal.add_argument("--output", default=DEFAULT_VERSIONS_DIR)
    internal.add_argument("--doc-name", default=None)
    internal.add_argument("--timeout", type=float, default=30.0)
    internal.add_argument("--skip-lifespan", action="store_true")
    return parser


def _snapshot(args: argparse.Namespace) -> int:
    from .settings import get_settings
    from .tool.build import BuildConfiguration
    from .tool.snapshot import SnapshotOptions, run_snapshot

    settings = get_settings()
    try:
        configuration = BuildConfiguration.parse(args.configuration)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if args.app and args.project:
        print("Error: --app and --project cannot be combined.", file=sys.stderr)
        return 1
    options = SnapshotOptions(
        projects=args.project,
        app=args.app,
        python=os.path.abspath(args.python) if args.python else None,
        configuration=configuration,
        no_build=args.no_build,
        output=args.output,
        doc_name=args.doc_name,
        exclude=args.exclude,
        exclude_dir=args.exclude_dir,
        parallel=args.parallel or settings.SNAPSHOT_MAX_PARALLEL,
        timeout=args.timeout or settings.SNAPSHOT_TIMEOUT_S,
        skip_lifespan=args.skip_lifespan,
    )
    return run_snapshot(options)


def _list(args: argparse.Namespace) -> int:
    from .settings import get_settings
    from .tool.list_command import run_list

    return run_list(args.dir, get_settings().FILE_PATTERN)


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .main import create_app
    from .settings import Settings

    overrides = {}
    if args.dir:
        overrides["VERSIONS_DIRECTORY"] = args.dir
    if args.prefix is not None:
        overrides["ROUTE_PREFIX"] = args.prefix
    settings = Settings(**overrides)
    uvicorn.run(create_app(settings), host=args.host, port=args.port, log_level=settings.LOG_LEVEL.lower())
    return 0


def _snapshot_internal(args: argparse.Namespace) -> int:
    from .tool.snapshot_internal import run_snapshot_internal

    return run_snapshot_internal(
        args.app,
        args.output,
        doc_name=args.doc_name,
        timeout=args.timeout,
        run_lifespan=not args.skip_lifespan,
    )


_COMMANDS = {
    "snapshot": _snapshot,
    "list": _list,
    "serve": _serve,
    "_snapshot": _snapshot_internal,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    level = os.getenv("SWAGGERDIFF_LOG_LEVEL", "WARNING" if args.command == "_snapshot" else "INFO")
    logging.basicConfig(level=level.upper(), stream=sys.stderr)
    return _COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
