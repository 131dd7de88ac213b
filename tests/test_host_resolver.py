import textwrap
import time

import pytest
import uvicorn
from fastapi import FastAPI

from swaggerdiff.tool.host_resolver import (
    AppResolutionError,
    SnapshotError,
    StartupTimeoutError,
    extract_document,
    generate_document,
    import_app,
    is_entry_script,
    load_app,
    run_entry_script,
)

pytestmark = pytest.mark.anyio


@pytest.fixture
def anyio_backend():
    return "asyncio"


def _write(directory, name, source):
    path = directory / name
    path.write_text(textwrap.dedent(source), encoding="utf-8")
    return path


def test_import_app_instance(tmp_path, monkeypatch):
    _write(tmp_path, "hr_plain.py", """
        from fastapi import FastAPI
        app = FastAPI(title="plain")
    """)
    monkeypatch.syspath_prepend(str(tmp_path))
    assert import_app("hr_plain:app").title == "plain"
    assert import_app("hr_plain").title == "plain"


def test_import_app_factory_receives_dry_run(tmp_path, monkeypatch):
    _write(tmp_path, "hr_factory.py", """
        from fastapi import FastAPI

        def create_app(dry_run=False):
            app = FastAPI()
            app.state.dry_run = dry_run
            return app

        def make_app():
            return FastAPI(title="no-args")
    """)
    monkeypatch.syspath_prepend(str(tmp_path))
    assert import_app("hr_factory:create_app").state.dry_run is True
    assert import_app("hr_factory:make_app").title == "no-args"


def test_import_app_errors(tmp_path, monkeypatch):
    _write(tmp_path, "hr_errors.py", "value = 3\n")
    monkeypatch.syspath_prepend(str(tmp_path))
    with pytest.raises(AppResolutionError, match="Could not import"):
        import_app("hr_does_not_exist:app")
    with pytest.raises(AppResolutionError, match="not found"):
        import_app("hr_errors:app")
    with pytest.raises(AppResolutionError, match="not an ASGI application"):
        import_app("hr_errors:value")


def test_load_app_bounds_a_hung_import(tmp_path, monkeypatch):
    _write(tmp_path, "hr_slow_import.py", """
        import threading
        threading.Event().wait()
        app = None
    """)
    monkeypatch.syspath_prepend(str(tmp_path))
    started = time.monotonic()
    with pytest.raises(StartupTimeoutError, match="hr_slow_import:app"):
        load_app("hr_slow_import:app", timeout=1)
    assert time.monotonic() - started < 5


def test_load_app_bounds_a_hung_factory(tmp_path, monkeypatch):
    _write(tmp_path, "hr_slow_factory.py", """
        import threading
        from fastapi import FastAPI

        def create_app():
            threading.Event().wait()
            return FastAPI()
    """)
    monkeypatch.syspath_prepend(str(tmp_path))
    started = time.monotonic()
    with pytest.raises(StartupTimeoutError):
        load_app("hr_slow_factory:create_app", timeout=1)
    assert time.monotonic() - started < 5


def test_load_app_module_errors_propagate(tmp_path, monkeypatch):
    _write(tmp_path, "hr_loaded.py", """
        from fastapi import FastAPI
        app = FastAPI(title="loaded")
    """)
    monkeypatch.syspath_prepend(str(tmp_path))
    assert load_app("hr_loaded:app", timeout=5).title == "loaded"
    with pytest.raises(AppResolutionError, match="Could not import"):
        load_app("hr_not_there:app", timeout=5)


def test_is_entry_script(tmp_path):
    script = _write(tmp_path, "serve", "")
    assert is_entry_script("main.py")
    assert is_entry_script(str(script))
    assert not is_entry_script("pkg.main:app")


def test_entry_script_server_is_intercepted(tmp_path):
    original = uvicorn.run
    script = _write(tmp_path, "hr_entry.py", """
        import uvicorn
        from fastapi import FastAPI

        app = FastAPI(title="scripted")

        if __name__ == "__main__":
            uvicorn.run(app, host="127.0.0.1", port=1)
            raise SystemExit("server returned")
    """)
    app = run_entry_script(script, timeout=10)
    assert app.title == "scripted"
    assert uvicorn.run is original


def test_entry_script_server_object_is_intercepted(tmp_path):
    original = uvicorn.Server.run
    script = _write(tmp_path, "hr_server.py", """
        import uvicorn
        from fastapi import FastAPI

        def build():
            return FastAPI(title="from-server")

        if __name__ == "__main__":
            config = uvicorn.Config(build, factory=True, port=1)
            uvicorn.Server(config).run()
    """)
    assert run_entry_script(script, timeout=10).title == "from-server"
    assert uvicorn.Server.run is original


def test_entry_script_without_server_uses_module_app(tmp_path):
    script = _write(tmp_path, "hr_noserver.py", """
        from fastapi import FastAPI
        app = FastAPI(title="module-level")
    """)
    assert load_app(str(script), timeout=10).title == "module-level"


def test_entry_script_failure(tmp_path):
    script = _write(tmp_path, "hr_crash.py", """
        raise RuntimeError("vault unreachable")
    """)
    with pytest.raises(AppResolutionError) as info:
        run_entry_script(script, timeout=10)
    assert "vault unreachable" in str(info.value.__cause__)


def test_entry_script_timeout(tmp_path):
    script = _write(tmp_path, "hr_hang.py", """
        import threading
        threading.Event().wait()
    """)
    with pytest.raises(StartupTimeoutError):
        run_entry_script(script, timeout=0.3)


def test_entry_script_missing(tmp_path):
    with pytest.raises(AppResolutionError, match="not found"):
        run_entry_script(tmp_path / "missing.py", timeout=1)


async def test_lifespan_startup_routes_are_documented():
    from contextlib import asynccontextmanager

    events = []

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async def late():
            return {"ok": True}

        app.add_api_route("/late", late, methods=["GET"])
        events.append("startup")
        yield
        events.append("shutdown")

    doc = await generate_document(FastAPI(lifespan=lifespan), timeout=5)
    assert "/late" in doc["paths"]
    assert events == ["startup", "shutdown"]


async def test_skip_lifespan():
    started = []

    from contextlib import asynccontextmanager

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        started.append(True)
        yield

    app = FastAPI(lifespan=lifespan)
    doc = await generate_document(app, run_lifespan=False)
    assert doc["openapi"].startswith("3.")
    assert started == []


async def test_startup_failure_is_reported():
    from contextlib import asynccontextmanager

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        raise RuntimeError("database down")
        yield

    with pytest.raises(SnapshotError, match="startup failed"):
        await generate_document(FastAPI(lifespan=lifespan), timeout=5)


async def test_startup_timeout():
    import asyncio
    from contextlib import asynccontextmanager

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await asyncio.sleep(30)
        yield

    with pytest.raises(StartupTimeoutError):
        await generate_document(FastAPI(lifespan=lifespan), timeout=0.2)


async def test_startup_timeout_waits_for_cancelled_lifespan():
    import asyncio
    from contextlib import asynccontextmanager

    cancelled = []

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            cancelled.append(True)
            raise
        yield

    with pytest.raises(StartupTimeoutError):
        await generate_document(FastAPI(lifespan=lifespan), timeout=0.2)
    assert cancelled == [True]


async def test_app_without_lifespan_support():
    class Minimal:
        async def __call__(self, scope, receive, send):
            return None

        def openapi(self):
            return {"openapi": "3.1.0", "info": {"title": "m", "version": "1"}, "paths": {}}

    doc = await generate_document(Minimal(), timeout=5)
    assert doc["info"]["title"] == "m"


def test_doc_name_selects_mounted_application():
    root = FastAPI(title="root")
    root.mount("/v2", FastAPI(title="v2"))
    assert extract_document(root, "v2")["info"]["title"] == "v2"
    assert extract_document(root, "/v2/")["info"]["title"] == "v2"
    assert extract_document(root, "unknown")["info"]["title"] == "root"
    assert extract_document(root)["info"]["title"] == "root"


def test_extract_requires_openapi():
    async def bare(scope, receive, send):
        return None

    with pytest.raises(SnapshotError, match="OpenAPI"):
        extract_document(bare)
