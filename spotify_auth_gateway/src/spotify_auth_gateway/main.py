# src/spotify_auth_gateway/main.py

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

import httpx
import uvicorn
from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from . import __version__, auth_utils
from .config import ENV_FILE_PATH, Settings, get_settings as load_settings
from .exceptions import ContentHTTPException
from .schemas import ErrorResponse, HealthResponse, RootResponse, TokenSuccess

logger = logging.getLogger(__name__)

# Routes served even when the provider credentials are not configured
UNGUARDED_PATHS = frozenset({"/", "/health"})

TOKEN_FIELDS = ("access_token", "token_type", "scope", "expires_in", "refresh_token")

ENDPOINTS = {
    "GET /health": "Health check",
    "GET /login": "Redirect to the provider authorization page",
    "GET /callback": "OAuth2 callback (handles success & failure)",
    "GET /refresh_token": "Refresh an access token (query: refresh_token)",
}


class ConfigurationGuardMiddleware(BaseHTTPMiddleware):
    """Rejects every request outside UNGUARDED_PATHS while credentials are missing."""

    async def dispatch(self, request, call_next):
        if request.url.path in UNGUARDED_PATHS:
            return await call_next(request)
        settings: Settings = request.app.state.settings
        missing = settings.missing_credentials()
        if missing:
            logger.error(f"GUARD: {request.method} {request.url.path} rejected. Missing settings: {missing}")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=ErrorResponse(
                    error="server_misconfigured",
                    message="CLIENT_ID, CLIENT_SECRET, and REDIRECT_URI must be set in environment variables.",
                ).model_dump(exclude_unset=True),
            )
        return await call_next(request)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_token_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """One client per request to the provider's token endpoint."""
    async with httpx.AsyncClient() as client:
        yield client


def configure_logging(level: str) -> None:
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger(__package__).setLevel(level.upper())


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    if settings is None:
        settings = load_settings()
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        logger.info(f"--- {settings.APP_NAME} (FastAPI) Starting Up ---")
        if ENV_FILE_PATH.exists():
            logger.info(f"Loaded .env file from: {ENV_FILE_PATH}")
        else:
            logger.info(f".env file not found at {ENV_FILE_PATH}. Relying on environment variables.")
        logger.info(f"Client ID: {settings.CLIENT_ID}")
        logger.info(f"Client Secret is set: {'Yes' if settings.CLIENT_SECRET else 'No'}")
        logger.info(f"Redirect URI: {settings.REDIRECT_URI}")
        logger.info(f"Authorize URL: {settings.AUTHORIZE_URL}")
        logger.info(f"Token URL: {settings.TOKEN_URL}")
        if not settings.is_configured:
            logger.warning(
                f"Missing settings {settings.missing_credentials()}: only / and /health will be served."
            )
        yield
        logger.info(f"--- {settings.APP_NAME} Shutting Down ---")

    app = FastAPI(
        title=settings.APP_NAME,
        description="OAuth2 Authorization Code gateway: login redirect, callback token exchange and refresh.",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings

    # Added last so CORS headers are also set on guard rejections
    app.add_middleware(ConfigurationGuardMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ContentHTTPException)
    async def content_exception_handler(request: Request, exc: ContentHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(exc.content),
            headers=exc.headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        # Unknown paths and unsupported methods on known paths are both "not found"
        if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content=ErrorResponse(
                    error="not_found",
                    message=f"Route {request.method} {request.url.path} not found.",
                ).model_dump(exclude_unset=True),
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "http_error", "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    register_routes(app)
    return app


def error_content(error, message: str, **extra) -> dict:
    return ErrorResponse(success=False, error=error, message=message, **extra).model_dump(exclude_unset=True)


def token_content(data: dict, always_include_refresh_token: bool) -> dict:
    # Keys the provider left out stay out, except refresh_token on /callback
    fields = {name: data[name] for name in TOKEN_FIELDS if name in data}
    if always_include_refresh_token:
        fields["refresh_token"] = data.get("refresh_token")
    elif not data.get("refresh_token"):
        fields.pop("refresh_token", None)
    return TokenSuccess(success=True, **fields).model_dump(exclude_unset=True)


def register_routes(app: FastAPI) -> None:

    @app.get("/")
    async def read_root(settings: Settings = Depends(get_settings)):
        return RootResponse(name=settings.APP_NAME, endpoints=ENDPOINTS)

    @app.get("/health")
    async def health():
        return HealthResponse(status="ok", timestamp=utc_timestamp())

    @app.get("/login")
    async def login(settings: Settings = Depends(get_settings)):
        state = auth_utils.generate_state()
        auth_url = auth_utils.build_auth_url(settings, state=state)
        logger.info("MAIN: /login - Redirecting to provider authorization page.")
        return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)

    @app.get("/callback")
    async def callback(
        code: Optional[str] = None,
        state: Optional[str] = None,
        error: Optional[str] = None,
        settings: Settings = Depends(get_settings),
        client: httpx.AsyncClient = Depends(get_token_client),
    ):
        # The state value is passed back untouched; it is not checked against /login
        if error:
            logger.info(f"MAIN: /callback - Authorization failed at {settings.PROVIDER_NAME}: {error}")
            raise ContentHTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=error_content(
                    error,
                    f"{settings.PROVIDER_NAME} authorization failed: {error}",
                    state=state or None,
                ),
            )

        if not code:
            raise ContentHTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=error_content(
                    "missing_code",
                    f"No authorization code was returned by {settings.PROVIDER_NAME}.",
                ),
            )

        try:
            data = await auth_utils.exchange_code_for_tokens(settings, code, client=client)
        except auth_utils.ProviderError as e:
            raise ContentHTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=error_content(e.error, e.error_description or "Token exchange failed."),
            )
        except Exception as e:
            logger.exception("MAIN: /callback - Token exchange error")
            raise ContentHTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=error_content("token_exchange_error", str(e)),
            )

        logger.info("MAIN: /callback - Token exchange successful.")
        return JSONResponse(content=token_content(data, always_include_refresh_token=True))

    @app.get("/refresh_token")
    async def refresh_token(
        refresh_token: Optional[str] = None,
        settings: Settings = Depends(get_settings),
        client: httpx.AsyncClient = Depends(get_token_client),
    ):
        if not refresh_token:
            raise ContentHTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=error_content(
                    "missing_refresh_token",
                    'Query parameter "refresh_token" is required.',
                ),
            )

        try:
            data = await auth_utils.refresh_access_token(settings, refresh_token, client=client)
        except auth_utils.ProviderError as e:
            raise ContentHTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=error_content(e.error, e.error_description or "Token refresh failed."),
            )
        except Exception as e:
            logger.exception("MAIN: /refresh_token - Token refresh error")
            raise ContentHTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=error_content("refresh_token_error", str(e)),
            )

        # The provider may rotate the refresh token; it is passed along only if present
        logger.info(f"MAIN: /refresh_token - Refresh successful. Rotated: {'Yes' if data.get('refresh_token') else 'No'}")
        return JSONResponse(content=token_content(data, always_include_refresh_token=False))


app = create_app()


def run() -> None:
    settings = load_settings()
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
