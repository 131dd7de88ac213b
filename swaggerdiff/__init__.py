"""Capture OpenAPI snapshots of FastAPI applications and diff them with oasdiff."""

from .env import DRYRUN_VARIABLE, is_dry_run

__version__ = "0.3.0"

__all__ = ["DRYRUN_VARIABLE", "is_dry_run", "__version__"]
