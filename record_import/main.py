from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import StreamingResponse

from record_import.config import get_settings
from record_import.errors import FatalInputError
from record_import.importer import ImportRequest, ImportRun, prepare_import, utc_clock
from record_import.logging_setup import configure_logging
from record_import.persistence import Repositories, init_db, list_import_runs
from record_import.progress import EventBuffer, stream_events
from record_import.schema import parse_kind

logger = logging.getLogger(__name__)

settings = get_settings()
DB_PATH = settings.db_path

app = FastAPI(title="Record Import Service", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:8001"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class ImportPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    csv: str | None = None
    collection_type: str | None = Field(default=None, alias="collectionType")
    field_mappings: dict[str, str] | None = Field(default=None, alias="fieldMappings")


@dataclass(frozen=True)
class Actor:
    id: str
    role: str


def get_db_path() -> Path:
    return DB_PATH


def get_clock() -> Callable[[], datetime]:
    return utc_clock


def require_import_permission(
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
) -> Actor:
    if not x_actor_id or not x_actor_role:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if x_actor_role not in settings.import_roles:
        raise HTTPException(status_code=403, detail="Permission denied")
    return Actor(id=x_actor_id, role=x_actor_role)


def _prepare(payload: ImportPayload) -> ImportRequest:
    try:
        return prepare_import(payload.csv, payload.collection_type, payload.field_mappings)
    except FatalInputError as exc:
        logger.warning("import rejected: %s", exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/health")
def health() -> JSONResponse:
    return JSONResponse({"ok": True, "service": "record-import"})


@app.post("/api/v1/imports")
def api_import(
    payload: ImportPayload,
    actor: Actor = Depends(require_import_permission),
    db_path: Path = Depends(get_db_path),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> JSONResponse:
    request = _prepare(payload)
    run = ImportRun(request, Repositories.for_db(db_path), clock=clock, actor_id=actor.id)
    summary = run.execute()
    if summary.imported == 0 and not summary.errors:
        raise HTTPException(status_code=400, detail="No valid rows found to import")
    return JSONResponse(summary.to_response())


@app.post("/api/v1/imports/stream")
def api_import_stream(
    payload: ImportPayload,
    actor: Actor = Depends(require_import_permission),
    db_path: Path = Depends(get_db_path),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> StreamingResponse:
    request = _prepare(payload)
    buffer = EventBuffer()
    run = ImportRun(request, Repositories.for_db(db_path), sink=buffer, clock=clock, actor_id=actor.id)
    return StreamingResponse(
        stream_events(run.outcomes(), buffer),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.get("/api/v1/imports/runs")
def api_import_runs(
    collection_type: str | None = None,
    limit: int = 50,
    actor: Actor = Depends(require_import_permission),
    db_path: Path = Depends(get_db_path),
) -> JSONResponse:
    if collection_type and parse_kind(collection_type) is None:
        raise HTTPException(status_code=400, detail="Invalid collection type")
    rows = list_import_runs(db_path, collection_type=collection_type, limit=limit)
    return JSONResponse({"rows": rows, "count": len(rows)})


@app.on_event("startup")
def on_startup() -> None:
    configure_logging(settings.log_level)
    init_db(DB_PATH)
