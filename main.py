import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import models  # noqa: F401  registers tables on Base
from authority import build_authority
from config import settings
from database import Base, SessionLocal, engine
from errors import (
    DuplicateActivationError,
    EntitlementError,
    InvalidLicenseKeyError,
    UnexpectedAuthorityError,
)
from reconciliation import make_trial_tracker
from routes_license import router as license_router
from system_jobs import SystemJobHandlers, SystemJobName, SystemJobsSchedule

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("entitlements.api")

system_job_handlers = SystemJobHandlers()
system_jobs_schedule = SystemJobsSchedule(system_job_handlers)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, wire the authority, register the trial tracker once."""
    Base.metadata.create_all(bind=engine)

    authority = build_authority(settings)
    app.state.authority = authority

    system_job_handlers.register_job_handler(
        SystemJobName.TRIAL_TRACKER,
        make_trial_tracker(SessionLocal, authority, settings),
    )
    await system_jobs_schedule.upsert_job(SystemJobName.TRIAL_TRACKER, settings.reconcile_cron)
    system_jobs_schedule.start()
    yield
    await system_jobs_schedule.stop()


app = FastAPI(title="entitlement-backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(license_router)


_STATUS_BY_ERROR = {
    DuplicateActivationError: 409,
    InvalidLicenseKeyError: 404,
    UnexpectedAuthorityError: 502,
}


@app.exception_handler(EntitlementError)
async def entitlement_error_handler(request: Request, exc: EntitlementError):
    status = _STATUS_BY_ERROR.get(type(exc), 500)
    return JSONResponse(status_code=status, content=exc.to_dict())


@app.get("/")
def root():
    return {"status": "ok", "service": "entitlement-backend"}


@app.get("/healthz")
def healthz():
    return {"status": "ok"}
