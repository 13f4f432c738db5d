"""
Maker-Checker Control Service — FastAPI application.

Entry point: configures logging and registers every router.
"""

import logging
import sys

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from maker_checker.config import get_settings
from maker_checker.api.admin import router as admin_router
from maker_checker.api.audit import router as audit_router
from maker_checker.api.auth import router as auth_router
from maker_checker.api.blacklist import router as blacklist_router
from maker_checker.api.health import router as health_router
from maker_checker.api.policy import router as policy_router
from maker_checker.api.notifications import router as notifications_router
from maker_checker.api.transactions import router as transactions_router

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Dual-control approval of sensitive transactions with risk screening",
)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Unhandled database error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "An internal error occurred. Please try again."},
    )


# Register routers
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(admin_router)
app.include_router(transactions_router)
app.include_router(policy_router)
app.include_router(blacklist_router)
app.include_router(audit_router)
app.include_router(notifications_router)
