# main.py
from dotenv import load_dotenv
load_dotenv()

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from helpers.errors import LeadSyncError, UpstreamAPIError
from helpers.tortoise_config import lifespan as db_lifespan
from scheduler.lead_scheduler import LeadSyncScheduler

# ----- Routers / controllers -----
from controllers.auth_controller import auth_router
from controllers import (
    analytics_controller,
    facebook_controller,
    form_controller,
    lead_controller,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("main")

SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() in ("1", "true", "yes", "on")


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with db_lifespan(app):
        scheduler = LeadSyncScheduler()
        app.state.scheduler = scheduler
        if SCHEDULER_ENABLED:
            scheduler.start()
        try:
            yield
        finally:
            scheduler.stop(wait=False)


app = FastAPI(title="Lead Ads Sync", lifespan=lifespan)

# ----- Middlewares -----
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----- Error rendering: {"success": false, "error": "..."} -----
@app.exception_handler(LeadSyncError)
async def lead_sync_error_handler(_: Request, exc: LeadSyncError):
    message = exc.with_hint() if isinstance(exc, UpstreamAPIError) else exc.message
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.__class__.__name__, message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": message})


@app.exception_handler(HTTPException)
async def http_error_handler(_: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", [])[1:])
    message = f"{field}: {first.get('msg')}" if field else str(first.get("msg", "Invalid request"))
    return JSONResponse(status_code=422, content={"success": False, "error": message})

# ----- Routers -----
app.include_router(auth_router, prefix="/api", tags=["Authentication"])
app.include_router(form_controller.router, prefix="/api", tags=["Forms"])
app.include_router(facebook_controller.router, prefix="/api", tags=["Facebook"])
app.include_router(lead_controller.router, prefix="/api", tags=["Leads"])
app.include_router(analytics_controller.router, prefix="/api", tags=["Analytics"])

# ----- Root -----
@app.get("/api/health")
def health():
    scheduler = getattr(app.state, "scheduler", None)
    return {"success": True, "data": {"status": "ok", "scheduler": bool(scheduler and scheduler.running)}}
