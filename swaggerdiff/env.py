"""Dry-run detection for application startup code.

When ``swaggerdiff snapshot`` boots an application to read its OpenAPI
document, external dependencies (secret stores, databases, brokers) are often
unreachable and never needed. Startup code can skip them::

    from swaggerdiff.env import is_dry_run

    if not is_dry_run():
        app.state.db = connect_database()

App factories may instead declare a ``dry_run`` keyword; the generator passes
``dry_run=True`` to any factory that accepts it.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional

# Set by the snapshot generator on every target process it launches.
DRYRUN_VARIABLE = "SWAGGERDIFF_DRYRUN"


def is_dry_run(environ: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if environ is None else environ
    return env.get(DRYRUN_VARIABLE, "").strip().lower() == "true"
