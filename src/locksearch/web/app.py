"""FastAPI application exposing the program search to a presentation layer."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from locksearch.config import AppConfig
from locksearch.index.manager import IndexManager
from locksearch.index.search import SearchResult
from locksearch.models import ExtractedIcon, path_identity

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="LockSearch", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_config: AppConfig | None = None
_manager: IndexManager | None = None


class IconPayload(BaseModel):
    kind: str
    letter: str | None = None
    color: str | None = None
    width: int | None = None
    height: int | None = None


class ProgramPayload(BaseModel):
    name: str
    launch_target: str
    origin: str
    score: int
    icon: IconPayload


def configure(config: AppConfig) -> None:
    """Set the configuration the service builds its index manager from."""
    global _config, _manager
    if _manager is not None:
        _manager.close()
    _config = config
    _manager = None


def get_manager() -> IndexManager:
    global _manager
    if _manager is None:
        _manager = IndexManager(_config if _config is not None else AppConfig())
    return _manager


def _to_payload(result: SearchResult) -> ProgramPayload:
    icon = result.icon
    if isinstance(icon, ExtractedIcon):
        icon_payload = IconPayload(kind="image", width=icon.width, height=icon.height)
    else:
        icon_payload = IconPayload(kind="placeholder", letter=icon.letter, color=icon.color)
    return ProgramPayload(
        name=result.display_name,
        launch_target=str(result.launch_target),
        origin=result.entry.origin.value,
        score=result.score,
        icon=icon_payload,
    )


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    manager = get_manager()
    index = await asyncio.to_thread(manager.load_or_build)
    if index.source == "cache":
        # Serve the cached view right away and refresh it behind the scenes.
        manager.start_background_rebuild()


@app.on_event("shutdown")
async def shutdown_event() -> None:
    if _manager is not None:
        _manager.close()


@app.get("/search")
async def search_programs(
    q: str = Query("", description="Partial program name"),
    manager: IndexManager = Depends(get_manager),
) -> dict[str, List[ProgramPayload]]:
    return {"results": [_to_payload(result) for result in manager.search(q)]}


@app.get("/programs")
async def list_programs(manager: IndexManager = Depends(get_manager)) -> dict[str, List[ProgramPayload]]:
    return {"results": [_to_payload(result) for result in manager.list_all()]}


@app.get("/icon")
async def program_icon(
    target: str = Query(..., description="Launch target of the program"),
    manager: IndexManager = Depends(get_manager),
) -> Response:
    key = path_identity(target)
    for entry in manager.current:
        if entry.identity == key and isinstance(entry.icon, ExtractedIcon):
            return Response(content=entry.icon.png, media_type="image/png")
    raise HTTPException(status_code=404, detail=f"No extracted icon for {target}")


@app.get("/status")
async def index_status(manager: IndexManager = Depends(get_manager)) -> dict[str, Any]:
    current = manager.current
    return {
        "programs": len(current),
        "source": current.source,
        "sort": current.sort,
        "indexing": manager.is_indexing,
    }


@app.post("/reindex")
async def reindex(manager: IndexManager = Depends(get_manager)) -> dict[str, Any]:
    try:
        index = await asyncio.to_thread(manager.rebuild)
    except Exception as exc:  # pragma: no cover
        LOGGER.exception("Reindex failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    stats = manager.last_stats
    return {
        "status": "ok",
        "programs": len(index),
        "duplicates": stats.duplicates if stats else 0,
        "skipped": stats.skipped if stats else 0,
        "warnings": list(stats.warnings) if stats else [],
    }
