import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from gatsishub import __version__, config
from gatsishub.api import (
    contact,
    dashboard,
    employees,
    feedbacks,
    materials,
    messages,
    order_logs,
    orders,
    payments,
    products,
    quotas,
    realtime,
    submissions,
    teams,
)
from gatsishub.db.session import init_db
from gatsishub.exceptions import GatsisError
from gatsishub.logger import configure_logging
from gatsishub.realtime.feed import capture_changes, feed

logger = logging.getLogger(__name__)

app = FastAPI(title="GatsisHub", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(orders.router, prefix="/orders", tags=["orders"])
app.include_router(order_logs.router, prefix="/order-logs", tags=["orders"])
app.include_router(payments.router, prefix="/payments", tags=["payments"])
app.include_router(products.router, prefix="/products", tags=["catalog"])
app.include_router(materials.router, prefix="/materials", tags=["catalog"])
app.include_router(employees.router, prefix="/employees", tags=["staff"])
app.include_router(teams.router, prefix="/teams", tags=["staff"])
app.include_router(quotas.router, prefix="/quotas", tags=["staff"])
app.include_router(submissions.router, prefix="/submissions", tags=["staff"])
app.include_router(feedbacks.router, prefix="/feedbacks", tags=["support"])
app.include_router(messages.router, prefix="/messages", tags=["support"])
app.include_router(contact.router, prefix="/contact", tags=["support"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
app.include_router(realtime.router, prefix="/realtime", tags=["realtime"])

# committed row changes fan out to /realtime subscribers
capture_changes(feed)


def _error(status_code: int, message: str, details=None) -> JSONResponse:
    body = {"error": message}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(GatsisError)
async def gatsis_error_handler(request: Request, exc: GatsisError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.status_code, exc.message)
    return _error(exc.status_code, exc.message, exc.details)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "form")]
        details[".".join(loc) or "body"] = err.get("msg", "Invalid value")
    logger.warning("%s %s invalid input: %s", request.method, request.url.path, details)
    return _error(400, "Missing or invalid fields", details)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("%s %s constraint violation: %s", request.method, request.url.path, exc.orig)
    return _error(400, "A record with these values already exists")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return _error(500, "An unexpected error occurred. Please try again later.")


@app.on_event("startup")
def on_startup():
    configure_logging()
    init_db()
    logger.info("GatsisHub %s started", __version__)


@app.get("/")
def root():
    return {"status": "ok", "service": "gatsishub", "version": __version__}
