from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from .config import Settings, configure_logging
from .intake import confirm_songs
from .jobs import InputError, InvalidTransition, StatusStore, TERMINAL_STATUSES
from .jobs.scanner import is_ready
from .worker import JobRunner


def create_app(store: StatusStore, runner: JobRunner) -> FastAPI:
    # Shutdown signal for long-lived streams (SSE) to terminate promptly on reload
    shutdown_event: asyncio.Event = asyncio.Event()

    @asynccontextmanager
    async def app_lifespan(app: FastAPI):
        try:
            yield
        finally:
            shutdown_event.set()
            runner.shutdown(wait=False)

    app = FastAPI(title="showrelay API", lifespan=app_lifespan)

    @app.get("/api/health")
    def health():
        return {"ok": True, "counts": store.counts()}

    @app.get("/api/status/{job_id}")
    def status(job_id: str):
        record = store.lookup(job_id)
        if record is None:
            raise HTTPException(404, f"Unknown job: {job_id}")
        return record.to_dict()

    @app.get("/api/archive-status/{job_id}")
    def archive_status(job_id: str):
        return store.archive_status(job_id)

    async def status_event_stream(request: Request, job_id: str, poll_interval: float):
        last: Optional[Dict[str, Any]] = None
        while True:
            if shutdown_event.is_set() or await request.is_disconnected():
                break
            record = await run_in_threadpool(store.lookup, job_id)
            data = record.to_dict() if record else {"job_id": job_id, "status": "unknown"}
            if data != last:
                yield f"data: {json.dumps(data)}\n\n"
                last = data
            if record is None or record.status in TERMINAL_STATUSES:
                break
            await asyncio.sleep(poll_interval)

    @app.get("/api/status/{job_id}/events")
    async def status_events(job_id: str, request: Request, poll_interval: float = 1.0):
        return StreamingResponse(status_event_stream(request, job_id, poll_interval), media_type="text/event-stream")

    @app.post("/api/jobs/{job_id}/start")
    def start_job(job_id: str):
        record = store.get(job_id)
        if record is None:
            raise HTTPException(404, f"Unknown job: {job_id}")
        if not is_ready(store, job_id, record.status) and record.status != "completed":
            raise HTTPException(409, f"Job {job_id} is {record.status}")
        if not runner.submit(job_id):
            raise HTTPException(409, f"Job {job_id} is already running")
        return {"ok": True, "job_id": job_id}

    @app.post("/api/jobs/{job_id}/songs")
    def post_songs(job_id: str, payload: Dict[str, Any]):
        songs: List[Dict[str, Any]] = payload.get("songs") or []
        if not store.exists(job_id):
            raise HTTPException(404, f"Unknown job: {job_id}")
        try:
            record = confirm_songs(store, job_id, songs)
        except InputError as e:
            raise HTTPException(400, str(e))
        except InvalidTransition as e:
            raise HTTPException(409, str(e))
        started = runner.submit(job_id)
        return {"ok": True, "started": started, "status": record.to_dict()}

    @app.get("/api/jobs")
    def jobs(limit: int = 100, statuses: Optional[str] = None):
        # statuses may be a comma-separated list
        status_list = [s.strip() for s in statuses.split(",")] if statuses else None
        return {
            "counts": store.counts(),
            "recent": store.recent_jobs(limit=limit, statuses=status_list),
            "worker": runner.stats(),
        }

    return app


def app_factory():
    """Build FastAPI app from environment settings. Used by uvicorn with --reload."""
    settings = Settings.from_env()
    settings.ensure_dirs()
    configure_logging(settings.log_dir, name="server")
    runner = JobRunner(settings)
    return create_app(runner.store, runner)
