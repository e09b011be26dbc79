# torkalk/main.py
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from torkalk import __version__
from torkalk.api.pricing import router as pricing_router
from torkalk.config import get_settings
from torkalk.gates.engine.errors import GateError
from torkalk.logging_config import get_logger, setup_logging

# ----------------------------------------------------
# App init
# ----------------------------------------------------
app = FastAPI(title="Tor-Kalkulator", version=__version__)

setup_logging(get_settings())
logger = get_logger()
logger.info("startup torkalk-api")

app.include_router(pricing_router)


# ----------------------------------------------------
# Health
# ----------------------------------------------------
@app.get("/health", include_in_schema=True)
def health() -> dict:
    return {"status": "ok"}


# ----------------------------------------------------
# Errors
# ----------------------------------------------------
@app.exception_handler(GateError)
async def gate_error_handler(request: Request, exc: GateError):
    return JSONResponse(
        status_code=422,
        content={"detail": {"code": exc.code, "message": exc.message, "meta": exc.meta}},
    )


# ----------------------------------------------------
# Logging middleware
# ----------------------------------------------------
@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    start = time.time()
    bound_logger = logger.bind(endpoint=str(request.url.path), method=request.method)

    bound_logger.debug("request_started")
    response = await call_next(request)
    latency_ms = round((time.time() - start) * 1000, 2)

    bound_logger.info(
        "request_finished status={} latency_ms={}", response.status_code, latency_ms
    )
    return response
