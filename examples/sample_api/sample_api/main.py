from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from swaggerdiff import is_dry_run
from swaggerdiff.integration import get_swagger_ui_html_with_diff_button, use_swagger_diff

log = logging.getLogger("sample_api")


class Item(BaseModel):
    id: int
    name: str


def create_app(dry_run: bool = False) -> FastAPI:
    dry_run = dry_run or is_dry_run()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if dry_run:
            log.info("dry run: skipping external connections")
        else:
            # a real service would open its database pool here
            app.state.items = {1: Item(id=1, name="first")}
        yield

    app = FastAPI(title="Sample API", version="1.4.2", docs_url=None, lifespan=lifespan)

    @app.get("/items", response_model=List[Item])
    async def list_items() -> List[Item]:
        return list(getattr(app.state, "items", {}).values())

    @app.get("/items/{item_id}", response_model=Item)
    async def get_item(item_id: int) -> Item:
        items = getattr(app.state, "items", {})
        if item_id not in items:
            raise HTTPException(status_code=404, detail="item not found")
        return items[item_id]

    @app.get("/docs", include_in_schema=False)
    async def docs():
        return get_swagger_ui_html_with_diff_button(openapi_url=app.openapi_url, title=app.title)

    use_swagger_diff(app)
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="127.0.0.1", port=8000)
