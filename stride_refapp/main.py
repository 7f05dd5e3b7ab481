import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from stride_refapp.config import settings
from stride_refapp.logging_config import configure_logging

configure_logging(settings.LOG_LEVEL)

logger = logging.getLogger("app")

# Log loaded config (secrets masked)
settings.log_summary()

from stride_refapp.database import init_db  # noqa: E402
from stride_refapp.routers import bot, lifecycle, modules, webhooks  # noqa: E402
from stride_refapp.schemas import HealthResponse  # noqa: E402
from stride_refapp.services.stride import StrideAPIError, StrideClient  # noqa: E402

init_db()


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.stride = StrideClient(
        client_id=settings.CLIENT_ID,
        client_secret=settings.CLIENT_SECRET,
        base_url=settings.api_base_url,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
        refresh_margin=settings.TOKEN_REFRESH_MARGIN_SECONDS,
    )
    logger.info(
        "app_started",
        extra={
            "extra": {
                "env": settings.ENV,
                "api_base_url": settings.api_base_url,
                "database": settings.DATABASE_URL,
            }
        },
    )
    try:
        yield
    finally:
        await app.state.stride.aclose()
        logger.info("app_stopped")


app = FastAPI(title="Stride Reference App", lifespan=lifespan)

# glance and action calls come cross-origin from the chat client
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

app.include_router(lifecycle.router)
app.include_router(bot.router)
app.include_router(webhooks.router)
app.include_router(modules.router)


@app.exception_handler(StrideAPIError)
async def stride_api_error_handler(request: Request, exc: StrideAPIError):
    logger.error(
        "stride_api_error",
        extra={
            "extra": {
                "request_id": getattr(request.state, "request_id", None),
                "path": request.url.path,
                "upstream_method": exc.method,
                "upstream_url": exc.url,
                "upstream_status": exc.status_code,
            }
        },
    )
    return JSONResponse(
        status_code=502,
        content={"detail": "Upstream request failed", "upstream_status": exc.status_code},
    )


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.time()

    method = request.method
    path = request.url.path

    logger.info(
        "request_started",
        extra={
            "extra": {
                "request_id": request_id,
                "method": method,
                "path": path,
                "client": request.client.host if request.client else "unknown",
            }
        },
    )

    try:
        response = await call_next(request)
        duration_ms = round((time.time() - start) * 1000, 1)
        response.headers["X-Request-Id"] = request_id

        logger.info(
            "request_completed",
            extra={
                "extra": {
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                }
            },
        )
        return response
    except Exception:
        duration_ms = round((time.time() - start) * 1000, 1)
        logger.error(
            "request_failed",
            extra={
                "extra": {
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "duration_ms": duration_ms,
                }
            },
            exc_info=True,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


@app.get("/health", response_model=HealthResponse)
async def health():
    return {"status": "ok"}


# Module pages (sidebar, dialog) and the descriptor assets; mounted last so routes win
app.mount("/", StaticFiles(directory=modules.STATIC_DIR), name="static")


def run() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)


if __name__ == "__main__":
    run()
