from __future__ import annotations

from fastapi import FastAPI

from tagstream.api.lifespan import lifespan
from tagstream.api.routes.health import router as health_router
from tagstream.api.routes.turns import router as turns_router
from tagstream.api.routes.workspace import router as workspace_router


def create_app() -> FastAPI:
    app = FastAPI(
        title="tagstream API",
        description="Decode streamed <file>/<terminal> markup and execute it against a sandbox.",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(health_router, include_in_schema=False)
    app.include_router(turns_router)
    app.include_router(workspace_router)

    return app
