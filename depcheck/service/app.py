"""FastAPI application exposing depcheck operations."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..config import load_settings
from ..engine import Engine, ScanResult
from ..errors import DepcheckError, NoCatalogDataError
from ..feeds.pipeline import IngestionReport
from ..report import summarize, summarize_ingestion


class CheckRequest(BaseModel):
    paths: List[str]
    update: bool = False


class CheckResponse(BaseModel):
    analyzers: List[str]
    warnings: List[str]
    stale: bool
    vulnerable_components: int
    vulnerability_count: int
    components: List[Dict[str, Any]]


class UpdateRequest(BaseModel):
    feeds: Optional[List[str]] = None
    force: bool = False


class UpdateResponse(BaseModel):
    degraded: bool
    feeds: Dict[str, Dict[str, Any]]


class FeedStatus(BaseModel):
    feed_id: str
    last_updated: Optional[datetime] = None
    schema_version: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    version: str


def _default_engine() -> Engine:
    return Engine.from_settings(load_settings(Path.cwd()))


def create_app(engine_factory: Callable[[], Engine] = _default_engine) -> FastAPI:
    """Create the FastAPI application exposing depcheck operations."""

    app = FastAPI(title="depcheck", version=__version__)

    async def get_engine() -> AsyncIterator[Engine]:
        # One engine per request so working sets never leak between scans.
        engine = engine_factory()
        try:
            yield engine
        finally:
            engine.close()

    async def _in_executor(func: Callable[[], Any]) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    @app.get("/feeds", response_model=List[FeedStatus])
    async def feeds(engine: Engine = Depends(get_engine)) -> List[FeedStatus]:
        if engine.store is None:
            return []
        store = engine.store
        metadata = await _in_executor(store.all_metadata)
        return [
            FeedStatus(
                feed_id=item.feed_id,
                last_updated=item.last_updated,
                schema_version=item.schema_version,
            )
            for item in metadata
        ]

    @app.post("/update", response_model=UpdateResponse)
    async def update(
        payload: UpdateRequest, engine: Engine = Depends(get_engine)
    ) -> UpdateResponse:
        def _run_update() -> IngestionReport:
            return engine.update(feed_ids=payload.feeds, force=payload.force)

        report = await _in_executor(_run_update)
        return UpdateResponse(**summarize_ingestion(report))

    @app.post("/check", response_model=CheckResponse)
    async def check(payload: CheckRequest, engine: Engine = Depends(get_engine)) -> CheckResponse:
        def _run_check() -> ScanResult:
            return engine.run(payload.paths, update=payload.update)

        result = await _in_executor(_run_check)
        return CheckResponse(**summarize(result))

    @app.exception_handler(NoCatalogDataError)
    async def no_catalog_handler(
        _: Any, exc: NoCatalogDataError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(
        _: Any, exc: FileNotFoundError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(DepcheckError)
    async def depcheck_error_handler(
        _: Any, exc: DepcheckError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port)


__all__ = ["create_app", "run_service"]
