"""Load a target ASGI application without serving it.

Two ways in:

* ``package.module:attr`` imports the module and takes the attribute. An app
  factory is called, with ``dry_run=True`` when it accepts that keyword. Both
  happen on a background thread and are abandoned once the timeout passes.
* ``path/to/main.py`` runs the entry script as ``__main__`` on a background
  thread while uvicorn is swapped for a no-op server that captures the
  application handed to it instead of binding a port.

Once loaded, the app's lifespan startup runs in-process (no server involved)
so routes registered during startup are part of the document.
"""

from __future__ import annotations

import asyncio
import functools
import importlib
import inspect
import logging
import runpy
import sys
import threading
import time
from contextlib import suppress
from pathlib import Path
from typing import Any, Callable, Dict, MutableMapping, Optional

log = logging.getLogger(__name__)


class SnapshotError(Exception):
    pass


class AppResolutionError(SnapshotError):
    pass


class StartupTimeoutError(SnapshotError):
    pass


def is_entry_script(target: str) -> bool:
    return target.endswith(".py") or (":" not in target and Path(target).is_file())


def _is_factory(obj: Any) -> bool:
    return inspect.isfunction(obj) or inspect.ismethod(obj) or isinstance(obj, functools.partial)


def call_factory(factory: Callable[..., Any]) -> Any:
    try:
        params = inspect.signature(factory).parameters
    except (TypeError, ValueError):
        params = {}
    if "dry_run" in params:
        return factory(dry_run=True)
    return factory()


def instantiate(obj: Any, *, factory: bool = False) -> Any:
    if factory or _is_factory(obj):
        obj = call_factory(obj)
    if not callable(obj):
        raise AppResolutionError(f"{obj!r} is not an ASGI application")
    return obj


def import_app(target: str) -> Any:
    module_name, _, attr = target.partition(":")
    attr = attr or "app"
    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as exc:
        raise AppResolutionError(f"Could not import module '{module_name}'") from exc
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as exc:
            raise AppResolutionError(f"Attribute '{attr}' not found in module '{module_name}'") from exc
    return instantiate(obj)


class NoOpServer:
    """Stand-in for uvicorn that records the application instead of serving it."""

    def __init__(self) -> None:
        self.app: Any = None
        self.error: BaseException | None = None
        self.captured = threading.Event()
        self._saved: Dict[tuple, Any] = {}

    def capture(self, app: Any, *, factory: bool = False) -> None:
        if self.captured.is_set():
            return
        try:
            if isinstance(app, str):
                from uvicorn.importer import import_from_string

                app = import_from_string(app)
            self.app = instantiate(app, factory=factory)
        except BaseException as exc:
            self.error = exc
        finally:
            self.captured.set()

    def __enter__(self) -> "NoOpServer":
        try:
            import uvicorn

            # `uvicorn.main` on the package is the click command; patch the module
            uvicorn_main = importlib.import_module("uvicorn.main")
        except ImportError as exc:
            raise AppResolutionError("Running an entry script requires uvicorn to be installed") from exc

        noop = self

        def run(app: Any, *args: Any, **kwargs: Any) -> None:
            noop.capture(app, factory=bool(kwargs.get("factory", False)))

        def server_run(server: Any, sockets: Any = None) -> None:
            noop.capture(server.config.app, factory=server.config.factory)

        async def server_serve(server: Any, sockets: Any = None) -> None:
            noop.capture(server.config.app, factory=server.config.factory)

        self._patch(uvicorn, "run", run)
        self._patch(uvicorn_main, "run", run)
        self._patch(uvicorn.Server, "run", server_run)
        self._patch(uvicorn.Server, "serve", server_serve)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        for (owner, name), original in self._saved.items():
            setattr(owner, name, original)
        self._saved.clear()

    def _patch(self, owner: Any, name: str, replacement: Any) -> None:
        self._saved[(owner, name)] = getattr(owner, name)
        setattr(owner, name, replacement)


def run_entry_script(path: Path, timeout: float) -> Any:
    path = path.resolve()
    if not path.is_file():
        raise AppResolutionError(f"Entry script not found: {path}")

    outcome: Dict[str, Any] = {}
    finished = threading.Event()

    def entrypoint() -> None:
        try:
            outcome["globals"] = runpy.run_path(str(path), run_name="__main__")
        except SystemExit as exc:
            if exc.code not in (None, 0):
                outcome["error"] = exc
        except BaseException as exc:
            outcome["error"] = exc
        finally:
            finished.set()

    script_dir = str(path.parent)
    if script_dir not in sys.path:
        sys.path.insert(0, script_dir)

    with NoOpServer() as server:
        thread = threading.Thread(target=entrypoint, name="swaggerdiff-entrypoint", daemon=True)
        thread.start()
        deadline = time.monotonic() + timeout
        while not (server.captured.is_set() or finished.is_set()):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise StartupTimeoutError(
                    f"Timed out after {timeout:g}s waiting for {path.name} to start its server."
                )
            server.captured.wait(min(remaining, 0.05))

    if server.error is not None:
        raise AppResolutionError(f"{path.name} passed an application that could not be loaded") from server.error
    if server.app is not None:
        return server.app
    if "error" in outcome:
        raise AppResolutionError(f"{path.name} failed before starting a server") from outcome["error"]
    # the script never called uvicorn; fall back to a module-level `app`
    candidate = outcome.get("globals", {}).get("app")
    if candidate is None:
        raise AppResolutionError(
            f"{path.name} neither started uvicorn nor defines a module-level 'app'"
        )
    return instantiate(candidate)


def import_app_within(target: str, timeout: float) -> Any:
    """Run :func:`import_app` on a daemon thread so a hung import or factory cannot block the caller."""
    outcome: Dict[str, Any] = {}
    finished = threading.Event()

    def load() -> None:
        try:
            outcome["app"] = import_app(target)
        except BaseException as exc:
            outcome["error"] = exc
        finally:
            finished.set()

    thread = threading.Thread(target=load, name="swaggerdiff-import", daemon=True)
    thread.start()
    if not finished.wait(timeout):
        raise StartupTimeoutError(f"Timed out after {timeout:g}s waiting for '{target}' to load.")
    if "error" in outcome:
        raise outcome["error"]
    return outcome["app"]


def load_app(target: str, *, timeout: float = 30.0) -> Any:
    if is_entry_script(target):
        return run_entry_script(Path(target), timeout)
    return import_app_within(target, timeout)


class LifespanDriver:
    """Drive the ASGI lifespan protocol for an app with no server attached."""

    def __init__(self, app: Any, timeout: float = 30.0) -> None:
        self.app = app
        self.timeout = timeout
        self.supported = True
        self._inbox: asyncio.Queue[MutableMapping[str, Any]] = asyncio.Queue()
        self._outbox: asyncio.Queue[MutableMapping[str, Any]] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    async def _run(self) -> None:
        scope = {"type": "lifespan", "asgi": {"version": "3.0", "spec_version": "2.0"}, "state": {}}
        await self.app(scope, self._inbox.get, self._outbox.put)

    async def _next_message(self) -> Optional[MutableMapping[str, Any]]:
        if self._task is None:
            raise SnapshotError("lifespan has not been started")
        getter = asyncio.ensure_future(self._outbox.get())
        try:
            done, _ = await asyncio.wait({getter, self._task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not getter.done():
                getter.cancel()
        if getter in done:
            return getter.result()
        # the app may have replied and returned in the same step
        try:
            return self._outbox.get_nowait()
        except asyncio.QueueEmpty:
            return None

    async def __aenter__(self) -> "LifespanDriver":
        self._task = asyncio.create_task(self._run())
        await self._inbox.put({"type": "lifespan.startup"})
        try:
            message = await asyncio.wait_for(self._next_message(), self.timeout)
        except asyncio.TimeoutError as exc:
            self._task.cancel()
            with suppress(Exception, asyncio.CancelledError):
                await self._task
            raise StartupTimeoutError(
                f"Timed out after {self.timeout:g}s waiting for application startup."
            ) from exc
        if message is None:
            # the app returned or raised before acknowledging: lifespan unsupported
            self.supported = False
            with suppress(Exception):
                self._task.result()
            log.debug("application does not implement lifespan; continuing without startup")
            return self
        if message["type"] == "lifespan.startup.failed":
            with suppress(Exception, asyncio.CancelledError):
                await self._task
            raise SnapshotError(f"Application startup failed: {message.get('message') or 'no details'}")
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._task is None or self._task.done():
            return
        await self._inbox.put({"type": "lifespan.shutdown"})
        try:
            await asyncio.wait_for(self._next_message(), self.timeout)
        except asyncio.TimeoutError:
            log.warning("application shutdown timed out")
        finally:
            if not self._task.done():
                self._task.cancel()
            with suppress(Exception, asyncio.CancelledError):
                await self._task


def select_document_app(app: Any, doc_name: Optional[str]) -> Any:
    """Pick the sub-application mounted at /<doc_name>, or the app itself."""
    if doc_name:
        mount_path = "/" + doc_name.strip("/")
        for route in getattr(app, "routes", []) or []:
            sub = getattr(route, "app", None)
            if getattr(route, "path", None) == mount_path and callable(getattr(sub, "openapi", None)):
                return sub
        log.debug("no sub-application mounted at %s; using the root document", mount_path)
    return app


def extract_document(app: Any, doc_name: Optional[str] = None) -> Dict[str, Any]:
    target = select_document_app(app, doc_name)
    openapi = getattr(target, "openapi", None)
    if not callable(openapi):
        raise SnapshotError(
            f"{type(target).__name__} does not expose an OpenAPI document; expected a FastAPI application"
        )
    doc = openapi()
    if not isinstance(doc, dict):
        raise SnapshotError("openapi() did not return a JSON object")
    return doc


async def generate_document(
    app: Any,
    *,
    doc_name: Optional[str] = None,
    timeout: float = 30.0,
    run_lifespan: bool = True,
) -> Dict[str, Any]:
    if not run_lifespan:
        return extract_document(app, doc_name)
    async with LifespanDriver(app, timeout):
        return extract_document(app, doc_name)
