# acadlib/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException, status as fastapi_status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError
from pymongo.errors import PyMongoError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from acadlib.core.config import CORS_ORIGINS, setup_logging
from acadlib.core.errors import LibraryError
from acadlib.core.rate_limiter import get_rate_limiter, rate_limit_exception_handler
from acadlib.middleware.authentication import AuthMiddleware
from acadlib.middleware.logging import RequestLoggingMiddleware
from acadlib.db.database import init_db
from acadlib.api.v1.api import api_router_v1

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application startup...")
    client, supports_transactions = await init_db()
    app.state.mongo_client = client
    app.state.supports_transactions = supports_transactions
    logger.info("Database initialized.")
    yield
    logger.info("Application shutdown...")
    client.close()


app = FastAPI(
    title="Academic Library API",
    description="Materials catalogue, physical copy circulation and acquisition requests.",
    version="1.0.0",
    lifespan=lifespan,
)

# --- Error handling ---
app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)


@app.exception_handler(LibraryError)
async def library_exception_handler(request: Request, exc: LibraryError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message} context={exc.context}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.code, "detail": exc.message},
    )


@app.exception_handler(RequestValidationError)
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    logger.warning(f"Validation Error on {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=fastapi_status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation Error", "errors": jsonable_errors(exc)},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP Exception: Status={exc.status_code}, Detail={exc.detail}")
    return JSONResponse(
        status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None)
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(f"Unhandled Exception on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=fastapi_status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An internal server error occurred."},
    )


def jsonable_errors(exc) -> list:
    # ctx may hold the raw exception instance, which is not JSON serializable.
    return [{k: (str(v) if k == "ctx" else v) for k, v in err.items()} for err in exc.errors()]


# --- Middleware (last added runs first) ---
app.add_middleware(AuthMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=500)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials="*" not in CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = get_rate_limiter()

app.include_router(api_router_v1)


@app.get("/")
async def read_root():
    return {"message": "Academic Library API"}


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok"}


@app.get("/health/db", tags=["Health"])
async def health_db(request: Request):
    client = getattr(request.app.state, "mongo_client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="MongoDB client not initialized.")
    try:
        await client.admin.command("ping")
    except PyMongoError as e:
        logger.error(f"MongoDB ping failed: {e}")
        raise HTTPException(status_code=503, detail="MongoDB connection failed.")
    return {
        "status": "success",
        "message": "MongoDB connection is healthy.",
        "transactions": bool(getattr(request.app.state, "supports_transactions", False)),
    }
