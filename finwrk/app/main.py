# Finwrk backend entrypoint: FastAPI app, routers and background job lifecycle.

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from finwrk.app.api import auth
from finwrk.app.api import clients
from finwrk.app.api import invoices
from finwrk.app.api import notifications
from finwrk.app.api import recurring_templates
from finwrk.app.api import reminders
from finwrk.app.core.errors import InvalidTransitionError, InvariantViolationError, JobsUnavailableError
from finwrk.app.core.logging import configure_logging
from finwrk.app.core.settings import get_settings
from finwrk.app.db.base import Base
from finwrk.app.db.session import engine
from finwrk.app.jobs.runner import get_job_runner

logger = logging.getLogger("finwrk")

app = FastAPI(title="Finwrk")
settings = get_settings()

origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
if settings.public_base_url not in origins:
    origins.append(settings.public_base_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(clients.router)
app.include_router(invoices.router)
app.include_router(recurring_templates.router)
app.include_router(reminders.router)
app.include_router(notifications.router)


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(InvariantViolationError)
async def invariant_violation_handler(request: Request, exc: InvariantViolationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(JobsUnavailableError)
async def jobs_unavailable_handler(request: Request, exc: JobsUnavailableError):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.get("/")
def read_root():
    return {"app": "Finwrk backend", "status": "ok"}


@app.get("/health")
def health_check():
    return {"status": "ok", "jobs": get_job_runner().status()}


@app.on_event("startup")
async def start_background_jobs():
    configure_logging(settings.log_level)
    Base.metadata.create_all(bind=engine)
    if settings.enable_jobs:
        await get_job_runner().start()
    else:
        logger.info("Background jobs disabled by configuration")


@app.on_event("shutdown")
async def stop_background_jobs():
    await get_job_runner().stop()
