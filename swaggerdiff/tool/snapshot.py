"""Stage 1 of ``swaggerdiff snapshot``.

Resolves target projects (``--app``, ``--project`` or auto-discovery), builds
them one at a time, then re-invokes this package's hidden ``_snapshot``
command with each project's own interpreter so the application imports
against its own dependencies.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from ..env import DRYRUN_VARIABLE
from .build import BuildConfiguration, build_project, interpreter_flags
from .discovery import (
    ProjectResolutionError,
    ProjectTarget,
    project_name,
    resolve_projects,
    resolve_target,
)

log = logging.getLogger(__name__)

# directory holding the swaggerdiff package. Stage 2 appends it to sys.path so the
# target environment's own packages keep precedence over this tool's environment.
TOOL_IMPORT_ROOT = Path(__file__).resolve().parents[2]
STAGE2_BOOTSTRAP = (
    "import sys; sys.path.append(%r); "
    "from swaggerdiff.__main__ import main; sys.exit(main())"
)
# stage 2 bounds loading and lifespan startup separately; allow both plus document extraction
STAGE2_GRACE_S = 30.0


@dataclass
class SnapshotOptions:
    projects: List[str] = field(default_factory=list)
    app: Optional[str] = None
    python: Optional[str] = None
    configuration: BuildConfiguration = BuildConfiguration.debug
    no_build: bool = False
    output: str = "docs/versions"
    doc_name: Optional[str] = None
    exclude: List[str] = field(default_factory=list)
    exclude_dir: List[str] = field(default_factory=list)
    parallel: int = 4
    timeout: float = 30.0
    skip_lifespan: bool = False


@dataclass
class SnapshotResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""


@dataclass
class SnapshotJob:
    target: ProjectTarget
    output_dir: Path


Runner = Callable[[SnapshotJob, SnapshotOptions], Awaitable[SnapshotResult]]
Builder = Callable[[ProjectTarget, BuildConfiguration], int]


def stage2_command(job: SnapshotJob, options: SnapshotOptions) -> List[str]:
    cmd = [
        str(job.target.python),
        *interpreter_flags(options.configuration),
        "-c",
        STAGE2_BOOTSTRAP % str(TOOL_IMPORT_ROOT),
        "_snapshot",
        "--app",
        job.target.app,
        "--output",
        str(job.output_dir),
        "--timeout",
        str(options.timeout),
    ]
    if options.doc_name:
        cmd += ["--doc-name", options.doc_name]
    if options.skip_lifespan or not job.target.run_lifespan:
        cmd.append("--skip-lifespan")
    return cmd


def stage2_env(job: SnapshotJob, base: Optional[dict] = None) -> dict:
    env = dict(os.environ if base is None else base)
    project_dir = job.target.project_dir
    paths = [str(project_dir)]
    if (project_dir / "src").is_dir():
        paths.append(str(project_dir / "src"))
    if env.get("PYTHONPATH"):
        paths.append(env["PYTHONPATH"])
    env["PYTHONPATH"] = os.pathsep.join(paths)
    # Signal to the target app that it is being loaded for snapshot generation.
    env[DRYRUN_VARIABLE] = "true"
    return env


def stage2_deadline(options: SnapshotOptions) -> float:
    return 2 * options.timeout + STAGE2_GRACE_S


async def run_snapshot_subprocess(job: SnapshotJob, options: SnapshotOptions) -> SnapshotResult:
    python = job.target.python
    if not python.exists():
        return SnapshotResult(1, "", f"Error: Python interpreter not found: {python}\n")
    try:
        proc = await asyncio.create_subprocess_exec(
            *stage2_command(job, options),
            cwd=str(job.target.project_dir),
            env=stage2_env(job),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        out, err = await asyncio.wait_for(proc.communicate(), stage2_deadline(options))
    except OSError as exc:
        return SnapshotResult(1, "", f"Error: {exc}\n")
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        limit = stage2_deadline(options)
        log.warning("snapshot process for %s killed after %gs", job.target.name, limit)
        return SnapshotResult(1, "", f"Error: Snapshot process timed out after {limit:g}s.\n")
    return SnapshotResult(
        proc.returncode if proc.returncode is not None else 1,
        out.decode("utf-8", errors="replace"),
        err.decode("utf-8", errors="replace"),
    )


async def run_concurrently(
    jobs: Sequence[SnapshotJob],
    options: SnapshotOptions,
    runner: Runner = run_snapshot_subprocess,
) -> List[SnapshotResult]:
    """Run every job, at most ``options.parallel`` at a time; results keep job order."""
    sem = asyncio.Semaphore(max(1, options.parallel))

    async def one(job: SnapshotJob) -> SnapshotResult:
        async with sem:
            try:
                return await runner(job, options)
            except Exception as exc:
                log.debug("snapshot runner failed", exc_info=True)
                return SnapshotResult(1, "", f"Error: {exc}\n")

    return list(await asyncio.gather(*(one(j) for j in jobs)))


def _emit(result: SnapshotResult) -> None:
    if result.stdout.strip():
        sys.stdout.write(result.stdout)
    if result.stderr.strip():
        sys.stderr.write(result.stderr)
    sys.stdout.flush()


def _header(name: str) -> None:
    print(f"\n── {name} ──")


def _prepare(
    pyprojects: Sequence[Path],
    options: SnapshotOptions,
    builder: Builder,
) -> Tuple[List[Tuple[str, SnapshotJob]], int]:
    """Phase 1, strictly sequential: projects sharing a tree must not build concurrently."""
    prepared: List[Tuple[str, SnapshotJob]] = []
    failures = 0
    for pyproject in pyprojects:
        if len(pyprojects) > 1:
            _header(project_name(pyproject))
        try:
            target = resolve_target(pyproject, python=options.python)
        except ProjectResolutionError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            failures += 1
            continue
        print(f"Using project: {pyproject}")
        if not options.no_build:
            print(f"Building ({options.configuration.value})...")
            if builder(target, options.configuration) != 0:
                print("Error: Build failed.", file=sys.stderr)
                failures += 1
                continue
        prepared.append((target.name, SnapshotJob(target, target.project_dir / options.output)))
    return prepared, failures


def run_snapshot(
    options: SnapshotOptions,
    *,
    cwd: Optional[Path] = None,
    runner: Runner = run_snapshot_subprocess,
    builder: Builder = build_project,
) -> int:
    cwd = (cwd or Path.cwd()).resolve()

    if options.app:
        # explicit application: single target, no build
        print(f"Using application: {options.app}")
        python = Path(options.python).resolve() if options.python else Path(sys.executable)
        target = ProjectTarget(name=options.app, project_dir=cwd, app=options.app, python=python)
        job = SnapshotJob(target, (cwd / options.output).resolve())
        result = asyncio.run(run_concurrently([job], options, runner))[0]
        _emit(result)
        return result.exit_code

    try:
        pyprojects = resolve_projects(options.projects, cwd, options.exclude, options.exclude_dir)
    except ProjectResolutionError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if options.projects:
        print(f"Using {len(pyprojects)} specified project(s)")
    elif len(pyprojects) > 1:
        print(f"Discovered {len(pyprojects)} web project(s):")
        for p in pyprojects:
            print(f"  {os.path.relpath(p.parent, cwd)}")

    prepared, failed = _prepare(pyprojects, options, builder)
    if not prepared:
        return 1

    succeeded = 0
    jobs = [job for _, job in prepared]
    if len(jobs) == 1:
        result = asyncio.run(run_concurrently(jobs, options, runner))[0]
        _emit(result)
        if result.exit_code == 0:
            succeeded += 1
        else:
            failed += 1
    else:
        # every job is an independent OS process, so they can run side by side;
        # output is buffered and replayed in project order to stay readable
        print(f"\nGenerating {len(jobs)} snapshots concurrently...")
        started = time.perf_counter()
        results = asyncio.run(run_concurrently(jobs, options, runner))
        elapsed = time.perf_counter() - started
        for (name, _), result in zip(prepared, results):
            _header(name)
            _emit(result)
            if result.exit_code == 0:
                succeeded += 1
            else:
                failed += 1
        print(f"\nCompleted in {elapsed:.1f}s")

    if len(pyprojects) > 1:
        total = succeeded + failed
        if failed == 0:
            print(f"Snapshots complete: {succeeded}/{total} succeeded")
        else:
            print(f"Snapshots complete: {succeeded}/{total} succeeded, {failed} failed")

    return 1 if failed else 0
