from __future__ import annotations

import logging
import subprocess  # nosec B404
import sys
from enum import Enum
from typing import List

from .discovery import ProjectTarget

log = logging.getLogger(__name__)

# byte-compiling these would be slow and says nothing about the project
_COMPILE_EXCLUDE = r"[\\/](\.venv|venv|\.git|\.tox|node_modules|build|dist|site-packages)[\\/]"
BUILD_TIMEOUT_S = 600


class BuildConfiguration(str, Enum):
    debug = "Debug"
    release = "Release"

    @classmethod
    def parse(cls, value: str) -> "BuildConfiguration":
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        raise ValueError(f"unknown build configuration: {value}")


def interpreter_flags(configuration: BuildConfiguration) -> List[str]:
    """Release runs the interpreter optimized (asserts and __debug__ blocks stripped)."""
    return ["-O"] if configuration is BuildConfiguration.release else []


def build_project(
    target: ProjectTarget,
    configuration: BuildConfiguration,
    *,
    timeout: float = BUILD_TIMEOUT_S,
) -> int:
    cmd = [
        str(target.python),
        *interpreter_flags(configuration),
        "-m",
        "compileall",
        "-q",
        "-x",
        _COMPILE_EXCLUDE,
        str(target.project_dir),
    ]
    log.debug("build command: %s", cmd)
    try:
        proc = subprocess.run(  # nosec B603
            cmd,
            cwd=target.project_dir,
            capture_output=True,
            text=True,
            check=False,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        print(f"Error: build of {target.name} timed out after {timeout:g}s", file=sys.stderr)
        return 124
    except OSError as exc:
        print(f"Error: could not run {target.python}: {exc}", file=sys.stderr)
        return 127
    if proc.stdout.strip():
        sys.stdout.write(proc.stdout)
    if proc.stderr.strip():
        sys.stderr.write(proc.stderr)
    return proc.returncode
