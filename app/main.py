import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.routes import api_router
from app.api.v1 import v1_router
from app.api.v1.envelope import from_domain_error
from app.core.config import settings
from app.core.db import engine
from app.core.logging_config import setup_logging
from app.domain.errors import ComplianceError
from app.infrastructure.db.base import Base
from app.infrastructure.jobs.notification_worker import start_notification_worker, stop_notification_worker

setup_logging()
logger = logging.getLogger("main")

app = FastAPI(title=settings.APP_NAME)


@app.exception_handler(ComplianceError)
async def compliance_error_handler(request: Request, exc: ComplianceError):
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.http_status, content=from_domain_error(exc))


@app.on_event("startup")
async def startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    start_notification_worker()


@app.on_event("shutdown")
async def shutdown():
    stop_notification_worker()
    await engine.dispose()


app.include_router(api_router)
app.include_router(v1_router)
