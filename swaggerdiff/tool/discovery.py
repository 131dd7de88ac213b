"""Find the FastAPI projects a snapshot run should cover."""

from __future__ import annotations

import os
import re
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

PYPROJECT = "pyproject.toml"

# Never descended into during auto-discovery.
SKIPPED_DIRECTORIES = {
    ".git",
    ".hg",
    ".idea",
    ".vs",
    ".vscode",
    ".venv",
    "venv",
    "env",
    ".tox",
    ".nox",
    "node_modules",
    "__pycache__",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
    "build",
    "dist",
    "site-packages",
}
MAX_DEPTH = 2

_WEB_DEPENDENCY = re.compile(r"^\s*(fastapi|starlette)(?![\w.-])", re.IGNORECASE)
_CONVENTIONAL_APPS = ("app.main:app", "main:app", "app:app")


class ProjectResolutionError(Exception):
    pass


@dataclass
class ProjectTarget:
    name: str
    project_dir: Path
    app: str
    python: Path
    run_lifespan: bool = True


def read_pyproject(path: Path) -> Dict[str, Any]:
    with path.open("rb") as fh:
        return tomllib.load(fh)


def tool_config(data: Dict[str, Any]) -> Dict[str, Any]:
    cfg = data.get("tool", {}).get("swaggerdiff", {})
    return cfg if isinstance(cfg, dict) else {}


def _declared_dependencies(data: Dict[str, Any]) -> Iterable[str]:
    project = data.get("project", {})
    yield from project.get("dependencies", []) or []
    for group in (project.get("optional-dependencies") or {}).values():
        yield from group or []
    # poetry keeps dependencies as a table
    poetry = data.get("tool", {}).get("poetry", {})
    yield from (poetry.get("dependencies") or {}).keys()


def project_name(pyproject: Path, data: Optional[Dict[str, Any]] = None) -> str:
    if data is None:
        try:
            data = read_pyproject(pyproject)
        except (OSError, tomllib.TOMLDecodeError):
            data = {}
    name = data.get("project", {}).get("name") or data.get("tool", {}).get("poetry", {}).get("name")
    return str(name) if name else pyproject.parent.name


def is_web_project(pyproject: Path) -> bool:
    """A project is a snapshot candidate if it depends on FastAPI/Starlette or configures swaggerdiff."""
    try:
        data = read_pyproject(pyproject)
    except (OSError, tomllib.TOMLDecodeError):
        return False
    if tool_config(data):
        return True
    return any(_WEB_DEPENDENCY.match(str(dep)) for dep in _declared_dependencies(data))


def discover_web_projects(
    root: Path,
    exclude_names: Iterable[str] | None = None,
    exclude_dirs: Iterable[str] | None = None,
) -> List[Path]:
    excluded_names = {n.lower() for n in exclude_names or []}
    excluded_dirs = {d.lower() for d in exclude_dirs or []}
    results: List[Path] = []

    def search(directory: Path, depth: int) -> None:
        if depth > MAX_DEPTH:
            return
        if depth > 0:
            name = directory.name
            if name in SKIPPED_DIRECTORIES or name.lower() in excluded_dirs:
                return
        candidate = directory / PYPROJECT
        if candidate.is_file() and is_web_project(candidate):
            names = {project_name(candidate).lower(), directory.name.lower()}
            if not names & excluded_names:
                results.append(candidate)
        try:
            children = sorted(p for p in directory.iterdir() if p.is_dir())
        except PermissionError:
            return
        for child in children:
            search(child, depth + 1)

    search(root, 0)
    results.sort(key=lambda p: str(p).lower())
    return results


def resolve_projects(
    projects: Iterable[str] | None,
    cwd: Path,
    exclude_names: Iterable[str] | None = None,
    exclude_dirs: Iterable[str] | None = None,
) -> List[Path]:
    """Explicit --project values win; otherwise the cwd project, otherwise a shallow scan."""
    explicit = list(projects or [])
    if explicit:
        resolved: List[Path] = []
        for raw in explicit:
            path = (cwd / raw).resolve()
            if path.is_dir():
                path = path / PYPROJECT
            if not path.is_file():
                raise ProjectResolutionError(f"Project file not found: {path}")
            resolved.append(path)
        return resolved

    local = cwd / PYPROJECT
    if local.is_file():
        return [local.resolve()]

    discovered = discover_web_projects(cwd, exclude_names, exclude_dirs)
    if not discovered:
        raise ProjectResolutionError(
            "No FastAPI projects found. Searched for pyproject.toml files declaring fastapi "
            f"up to {MAX_DEPTH} levels deep. Use --project to specify project paths explicitly."
        )
    return discovered


def venv_interpreter(project_dir: Path) -> Optional[Path]:
    for venv in (".venv", "venv"):
        if os.name == "nt":
            candidate = project_dir / venv / "Scripts" / "python.exe"
        else:
            candidate = project_dir / venv / "bin" / "python"
        if candidate.exists():
            return candidate
    return None


def guess_app(project_dir: Path, package: str) -> Optional[str]:
    module_name = package.replace("-", "_")
    for candidate in (*_CONVENTIONAL_APPS, f"{module_name}.main:app"):
        module = candidate.split(":", 1)[0]
        rel = Path(*module.split("."))
        for base in (project_dir, project_dir / "src"):
            if (base / rel).with_suffix(".py").is_file() or (base / rel / "__init__.py").is_file():
                return candidate
    return None


def resolve_target(
    pyproject: Path,
    *,
    app: Optional[str] = None,
    python: Optional[str] = None,
) -> ProjectTarget:
    try:
        data = read_pyproject(pyproject)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ProjectResolutionError(f"Could not read {pyproject}: {exc}") from exc

    project_dir = pyproject.parent
    cfg = tool_config(data)
    name = project_name(pyproject, data)

    target = app or cfg.get("app") or cfg.get("entry") or guess_app(project_dir, name)
    if not target:
        raise ProjectResolutionError(
            f"Could not determine the application for {name}. "
            "Set [tool.swaggerdiff] app = \"package.module:app\" in pyproject.toml or pass --app."
        )

    configured = python or cfg.get("python")
    if configured:
        interpreter = Path(configured)
        if not interpreter.is_absolute():
            interpreter = project_dir / interpreter
    else:
        interpreter = venv_interpreter(project_dir) or Path(sys.executable)

    return ProjectTarget(
        name=name,
        project_dir=project_dir,
        app=str(target),
        python=interpreter,
        run_lifespan=bool(cfg.get("lifespan", True)),
    )
