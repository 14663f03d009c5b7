"""
Todo API: stateless backend for the shared todo list.
GET/POST /api/todos, PATCH/DELETE /api/todos/{id}; session-mode auth routes under /api/auth.
Port 3001.
"""
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from todo_api import config
from todo_api.auth_routes import router as auth_router
from todo_api.database import init_db
from todo_api.rate_limit import SlidingWindowLimiter
from todo_api.store import NotFound, ValidationError
from todo_api.todos import router as todos_router
from todo_auth.client import OIDCClient
from todo_auth.discovery import MetadataCache
from todo_auth.errors import AuthError, Unauthorized
from todo_auth.keys import KeySetCache

logger = logging.getLogger(__name__)


def build_oidc_client(http: httpx.AsyncClient) -> OIDCClient:
    """Discovery and key-set caches live as long as the client: one per process."""
    metadata = MetadataCache(config.ISSUER, http)
    return OIDCClient(
        issuer=config.ISSUER,
        client_id=config.CLIENT_ID,
        client_secret=config.CLIENT_SECRET,
        redirect_uri=config.REDIRECT_URI,
        scope=config.SCOPE,
        metadata=metadata,
        keys=KeySetCache(metadata, http),
        http=http,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables; build the provider HTTP client and OIDC caches; close them on shutdown."""
    init_db()
    logger.info("Database initialized; auth mode: %s", config.AUTH_MODE)
    async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT) as http:
        app.state.oidc = build_oidc_client(http)
        yield


app = FastAPI(title="Todo API", version="1.0.0", lifespan=lifespan)
app.state.login_limiter = SlidingWindowLimiter(config.RATE_LIMIT_LOGIN_PER_MINUTE)

_allow_any_origin = config.CORS_ORIGINS == ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=not _allow_any_origin,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(todos_router, tags=["todos"])
if config.AUTH_MODE == "session":
    app.include_router(auth_router, tags=["auth"])


@app.exception_handler(Unauthorized)
async def unauthorized_handler(request: Request, exc: Unauthorized):
    headers = {"WWW-Authenticate": "Bearer"} if config.AUTH_MODE == "bearer" else None
    return JSONResponse({"error": "unauthorized"}, status_code=401, headers=headers)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    # Provider unreachable / discovery failure while verifying: not the caller's fault
    logger.error("Auth backend error on %s: %s: %s", request.url.path, type(exc).__name__, exc)
    return JSONResponse({"error": "internal error"}, status_code=500)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse({"error": str(exc)}, status_code=400)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"error": "invalid request"}, status_code=400)


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse({"error": "not found"}, status_code=404)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "todo_api", "auth_mode": config.AUTH_MODE}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "todo_api.main:app",
        host="127.0.0.1",
        port=config.PORT,
        reload=True,
    )
