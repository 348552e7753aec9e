from __future__ import annotations
import time
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .candidate_store import CandidateStore
from .settings import settings
from .stats import pool_stats

router = APIRouter()

@router.api_route("/v1/candidates/stats", methods=["GET","HEAD"])
async def candidate_pool_stats(request: Request, top: int = Query(default=5, ge=0, le=100)):
    store: CandidateStore | None = getattr(request.app.state, "candidate_store", None)
    if store is None:
        return JSONResponse({"ok": False, "error": "candidate store not configured"}, status_code=503)
    pool = store.load()
    return JSONResponse({"ok": True, "backend": store.backend.name, "stats": pool_stats(pool, time.time(), top=top)})

@router.get("/metrics")
async def metrics_endpoint(request: Request):
    if not getattr(request.app.state, "metrics_public", settings.metrics_public):
        raise HTTPException(status_code=403, detail="metrics disabled")
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

def create_app(store: CandidateStore, *, metrics_public: Optional[bool] = None) -> FastAPI:
    app = FastAPI(title="modelpool")
    app.state.candidate_store = store
    app.state.metrics_public = settings.metrics_public if metrics_public is None else metrics_public
    app.include_router(router)
    return app
