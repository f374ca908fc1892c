# lastmile/main.py
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from lastmile.core.logging_config import logger, setup_logging
from lastmile.core.settings import settings
from lastmile.db import create_all
from lastmile.errors import ImportBlocked, MappingError, ParseError, PreviewExpired, PricingError
from lastmile.observability.metrics import router as metrics_router
from lastmile.routers import imports, pricing, profit

# ----------------------------------------------------
# App init
# ----------------------------------------------------
app = FastAPI(title=settings.APP_NAME, version="0.1.0")

setup_logging()
logger.info("startup", service=settings.APP_NAME)


# ----------------------------------------------------
# Health
# ----------------------------------------------------
@app.get("/health", include_in_schema=True)
def health() -> dict:
    return {"status": "ok"}


# ----------------------------------------------------
# Logging middleware
# ----------------------------------------------------
@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    start = time.time()
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

    bound_logger = logger.bind(
        request_id=request_id,
        endpoint=str(request.url.path),
        method=request.method,
    )

    bound_logger.info("request_started")
    response = await call_next(request)
    latency_ms = round((time.time() - start) * 1000, 2)

    response.headers["X-Request-ID"] = request_id
    bound_logger.bind(status_code=response.status_code, latency_ms=latency_ms).info(
        "request_finished"
    )
    return response


# ----------------------------------------------------
# Error mapping
# ----------------------------------------------------
@app.exception_handler(ParseError)
def parse_error_handler(request: Request, exc: ParseError):
    return JSONResponse(
        status_code=400,
        content={"code": type(exc).__name__, "message": str(exc)},
    )


@app.exception_handler(MappingError)
def mapping_error_handler(request: Request, exc: MappingError):
    return JSONResponse(
        status_code=422,
        content={"code": "MAPPING_INVALID", "errors": exc.errors, "warnings": exc.warnings},
    )


@app.exception_handler(ImportBlocked)
def import_blocked_handler(request: Request, exc: ImportBlocked):
    return JSONResponse(status_code=422, content={"code": exc.code, "message": exc.message})


@app.exception_handler(PreviewExpired)
def preview_expired_handler(request: Request, exc: PreviewExpired):
    return JSONResponse(
        status_code=404,
        content={"code": "PREVIEW_EXPIRED", "message": str(exc)},
    )


@app.exception_handler(PricingError)
def pricing_error_handler(request: Request, exc: PricingError):
    return JSONResponse(
        status_code=422,
        content={"code": exc.code, "message": exc.message, "details": exc.details},
    )


# ----------------------------------------------------
# Routers
# ----------------------------------------------------
app.include_router(imports.router)
app.include_router(pricing.router)
app.include_router(profit.router)
app.include_router(metrics_router)  # /metrics


# ----------------------------------------------------
# Startup
# ----------------------------------------------------
@app.on_event("startup")
async def on_startup():
    await create_all()
