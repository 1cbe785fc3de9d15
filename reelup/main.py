import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dotenv import load_dotenv

# Load environment variables from .env file before settings are read
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from reelup.core.config import settings
from reelup.core.logging import setup_logging, request_id_ctx
from reelup.core.errors import UploadError, MissingChunksError
from reelup.core.db import init_models, engine
from reelup.api.router import api_router
from reelup.modules.uploads.sweeper import run_session_sweeper

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    app.state.sweeper_task = asyncio.create_task(run_session_sweeper())
    yield
    task = getattr(app.state, "sweeper_task", None)
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    await engine.dispose()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    process_time = (time.time() - start_time) * 1000
    logger.info(
        f"Request: {request.method} {request.url.path} - Response: {response.status_code} - Time: {process_time:.2f}ms"
    )
    return response


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id", "-")
    token = request_id_ctx.set(rid)
    try:
        return await call_next(request)
    finally:
        request_id_ctx.reset(token)


@app.exception_handler(UploadError)
async def upload_error_handler(request: Request, exc: UploadError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} for {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} for {request.method} {request.url.path}: {exc.message}")
    content = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, MissingChunksError):
        content["missing"] = exc.reported()
        content["missingCount"] = len(exc.missing)
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.critical(f"Unhandled exception for request {request.method} {request.url.path}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"message": "An internal server error occurred."},
    )


app.include_router(api_router, prefix=settings.API_PREFIX)
