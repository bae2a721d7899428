from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, APIRouter, Request, HTTPException, Query, Depends
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from jobpipe import __version__
from jobpipe.orchestrator import Pipeline, build_pipeline
from jobpipe.scheduler.scheduler import TaskNotFoundError
from jobpipe.scrapers.manager import UnknownSourceError
from jobpipe.utils.logger import logger, memory_handler


class ScrapeRequest(BaseModel):
    portal: str = Field(default="all", description="Source name or 'all'")
    max_concurrent: Optional[int] = Field(default=None, ge=1, le=10)


class CleanupRequest(BaseModel):
    days_old: int = Field(default=30, ge=1, le=365)


class TaskToggle(BaseModel):
    enabled: bool


router = APIRouter(prefix="/api")


def get_pipeline(request: Request) -> Pipeline:
    return request.app.state.pipeline


# ============ Scraping ============

@router.get("/scraping/sources")
async def list_sources(pipeline: Pipeline = Depends(get_pipeline)):
    sources = []
    for name in pipeline.manager.available_sources():
        extractor = pipeline.manager.get_extractor(name)
        config = getattr(extractor, "config", None)
        sources.append({
            "name": name,
            "portal": config.portal if config else name,
            "url": config.start_url if config else None,
        })
    return {"sources": sources}


@router.post("/scraping/trigger", status_code=202)
async def trigger_scrape(request: ScrapeRequest, pipeline: Pipeline = Depends(get_pipeline)):
    portal = request.portal.lower()
    if portal != "all":
        try:
            pipeline.manager.get_extractor(portal)
        except UnknownSourceError as e:
            raise HTTPException(status_code=400, detail=str(e))

    payload = {"source": portal}
    if request.max_concurrent:
        payload["max_concurrent"] = request.max_concurrent
    job_id = pipeline.queue.enqueue("scraping", payload)

    return {
        "message": "Scraping job queued",
        "job_id": job_id,
        "portal": portal,
        "status": "pending",
        "available_portals": pipeline.manager.available_sources(),
    }


@router.get("/scraping/status")
async def scraping_status(pipeline: Pipeline = Depends(get_pipeline)):
    return {
        "listings": pipeline.db.get_listing_stats(),
        "recent_runs": pipeline.db.get_recent_logs(limit=5),
        "scrapers": pipeline.manager.get_status()["metrics"],
        "queue": pipeline.queue.stats(),
    }


@router.get("/scraping/logs")
async def scraping_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    portal: Optional[str] = None,
    pipeline: Pipeline = Depends(get_pipeline),
):
    total = pipeline.db.count_logs(source=portal)
    logs = pipeline.db.get_recent_logs(limit=limit, offset=(page - 1) * limit, source=portal)
    return {
        "data": logs,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    }


@router.post("/scraping/cleanup")
async def cleanup_listings(request: CleanupRequest, pipeline: Pipeline = Depends(get_pipeline)):
    count = pipeline.repository.deactivate_stale(request.days_old)
    return {
        "message": "Cleanup completed",
        "deactivated": count,
        "days_old": request.days_old,
    }


# ============ Scheduler & Queue ============

@router.get("/scheduler/status")
async def scheduler_status(pipeline: Pipeline = Depends(get_pipeline)):
    return pipeline.scheduler.get_status()


@router.post("/scheduler/tasks/{name}/trigger")
async def trigger_task(name: str, pipeline: Pipeline = Depends(get_pipeline)):
    try:
        await pipeline.scheduler.trigger(name)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Manual trigger of {name} failed: {e}")
        raise HTTPException(status_code=500, detail=f"Task {name} failed: {e}")

    return {"message": f"Task {name} triggered", "task": pipeline.scheduler.get_task(name).to_dict()}


@router.post("/scheduler/tasks/{name}/enabled")
async def toggle_task(name: str, toggle: TaskToggle, pipeline: Pipeline = Depends(get_pipeline)):
    try:
        task = pipeline.scheduler.set_enabled(name, toggle.enabled)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return task.to_dict()


@router.get("/queue/stats")
async def queue_stats(pipeline: Pipeline = Depends(get_pipeline)):
    return pipeline.queue.stats()


@router.get("/logs")
async def get_logs(n: int = Query(50, ge=1, le=1000), level: Optional[str] = None):
    """Recent log lines from the in-memory ring buffer, optionally at or above a level"""
    try:
        return {"logs": memory_handler.get_logs(n, min_level=level)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def create_app(pipeline: Optional[Pipeline] = None, start_background: bool = True) -> FastAPI:
    """
    Build the API around a pipeline (built from settings when omitted).
    With start_background the queue runner and scheduler run for the app's lifetime.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_background:
            await app.state.pipeline.start()
        try:
            yield
        finally:
            if start_background:
                await app.state.pipeline.stop()

    app = FastAPI(title="jobpipe API", version=__version__, lifespan=lifespan)
    app.state.pipeline = pipeline or build_pipeline()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app
