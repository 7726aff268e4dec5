import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from lending_library.auth import TOKEN_HEADER, Authenticator, extract_token
from lending_library.config import settings
from lending_library.dispatcher import Dispatcher, failure
from lending_library.library import Library
from lending_library.models import now_iso
from lending_library.services.google_books_service import GoogleBooksService
from lending_library.services.http_client import cleanup_http_client, get_http_client

logging.basicConfig(level=getattr(logging, settings.effective_log_level, logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await get_http_client()
    try:
        yield
    finally:
        await cleanup_http_client()


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.allowed_origin],
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type", TOKEN_HEADER, "Authorization", "x-amz-content-sha256"],
)


# Built on first request and reused while the worker is warm
_dispatcher: Optional[Dispatcher] = None


def get_dispatcher() -> Dispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = Dispatcher(Library(), GoogleBooksService(), Authenticator())
    return _dispatcher


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = "Method not allowed" if exc.status_code == 405 else str(exc.detail)
    return JSONResponse(failure(message), status_code=exc.status_code, headers=getattr(exc, "headers", None))


@app.get("/health")
async def health():
    """Liveness probe; does not touch the row store."""
    return {
        "status": "healthy",
        "timestamp": now_iso(),
        "version": settings.app_version,
        "row_store": settings.row_store,
        "image_storage": settings.image_storage,
    }


@app.options("/")
async def preflight():
    return Response(status_code=204)


@app.post("/")
async def handle_action(request: Request, dispatcher: Dispatcher = Depends(get_dispatcher)):
    """Single action endpoint: body is {"action": ..., ...params}."""
    token = extract_token(request.headers)
    status_code, envelope = await dispatcher.handle(token, await request.body())
    return JSONResponse(envelope, status_code=status_code)
