"""Application assembly and entry point for the HTTP and stdio transports."""

from contextlib import asynccontextmanager
from typing import Optional
import argparse
import asyncio
import logging
import sys

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import public_router, router as api_router
from .auth import AuthorizationGate, CredentialStore, TokenService
from .config import DEFAULT_API_KEY, DEFAULT_JWT_SECRET, DEFAULT_PASSWORD, Settings, get_settings
from .engine import DuckDBEngine
from .errors import AuthError, GatewayError, UnexpectedError
from .logging_config import setup_logging
from .protocol import SESSION_HEADER, ToolProtocolAdapter, router as mcp_router, run_stdio
from .saved_queries import SavedQueryStore
from .sessions import SessionManager

logger = logging.getLogger(__name__)


def build_gate(settings: Settings) -> AuthorizationGate:
    """Credential store seeded with the default principal, token service and gate."""
    credentials = CredentialStore()
    credentials.set_principal(settings.default_user, settings.default_password)
    tokens = TokenService(
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        ttl_seconds=settings.token_ttl_seconds,
    )
    return AuthorizationGate(tokens, credentials, settings.api_key, enabled=settings.auth_enabled)


def log_auth_summary(settings: Settings) -> None:
    """Startup hints about the authorization configuration."""
    if not settings.auth_enabled:
        logger.warning("!!! AUTHORIZATION IS DISABLED (AUTH_ENABLED=false): every request is allowed !!!")
        return
    if settings.jwt_secret_key == DEFAULT_JWT_SECRET:
        logger.warning("Using the default JWT secret. Set JWT_SECRET_KEY in production.")
    if settings.api_key == DEFAULT_API_KEY:
        logger.warning("Using the default API key. Set API_KEY in production.")
    if settings.default_password == DEFAULT_PASSWORD:
        logger.warning("Default user '%s' has the default password.", settings.default_user)
    logger.info(
        "Auth: accepting X-API-Key and Bearer tokens (%s, TTL=%ss)",
        settings.jwt_algorithm,
        settings.token_ttl_seconds,
    )


def register_error_handlers(app: FastAPI) -> None:
    async def gateway_error_handler(request: Request, exc: GatewayError):
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
        if isinstance(exc, UnexpectedError):
            logger.error(f"Unexpected error on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(exc.to_dict(), status_code=exc.status, headers=headers)

    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse({"error": message}, status_code=400)

    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(UnexpectedError().to_dict(), status_code=500)

    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application with its own engine, principal and session registry."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting White Duck gateway...")
        logger.info(f"DuckDB mode: {settings.duckdb_mode} ({settings.database_path})")
        log_auth_summary(settings)
        app.state.engine.connect()
        logger.info(f"Endpoints: {settings.api_prefix} (REST), /mcp (tool protocol)")

        yield

        app.state.sessions.close_all()
        try:
            app.state.engine.close()
        except Exception as e:
            logger.warning(f"Error closing DuckDB connection: {e}")

    app = FastAPI(
        title="White Duck Gateway",
        description="SQL gateway over DuckDB with a REST API and an MCP tool endpoint",
        version=__version__,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    app.state.settings = settings
    app.state.gate = build_gate(settings)
    app.state.engine = DuckDBEngine(settings.database_path)
    app.state.protocol = ToolProtocolAdapter(app.state.engine)
    app.state.sessions = SessionManager()
    app.state.saved_queries = SavedQueryStore()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key", SESSION_HEADER, "Last-Event-ID", "mcp-protocol-version"],
        expose_headers=[SESSION_HEADER, "mcp-protocol-version"],
    )
    register_error_handlers(app)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "white-duck"}

    app.include_router(public_router, prefix=settings.api_prefix)
    app.include_router(api_router, prefix=settings.api_prefix)
    app.include_router(mcp_router)
    return app


def is_stdio_mode() -> bool:
    """Detect stdio transport: stdin is a pipe rather than a TTY."""
    return not sys.stdin.isatty()


async def stdio_main(settings: Settings) -> None:
    """Run the tool protocol over stdio."""
    logger.info("Starting White Duck in stdio mode...")
    engine = DuckDBEngine(settings.database_path)
    try:
        engine.connect()
    except Exception as e:
        logger.error(f"Failed to open DuckDB database: {e}", exc_info=True)
        sys.exit(1)

    try:
        await run_stdio(ToolProtocolAdapter(engine))
    finally:
        engine.close()


def main(argv=None):
    """Run the gateway (auto-detects stdio vs HTTP mode)."""
    parser = argparse.ArgumentParser(prog="white-duck", description=__doc__)
    parser.add_argument("--stdio", action="store_true", help="serve the tool protocol over stdio")
    parser.add_argument("--http", action="store_true", help="serve HTTP even when stdin is not a TTY")
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir)

    if args.stdio or (is_stdio_mode() and not args.http):
        asyncio.run(stdio_main(settings))
    else:
        logger.info("Starting White Duck in HTTP mode...")
        uvicorn.run(
            "white_duck.server:create_app",
            factory=True,
            host=settings.server_host,
            port=settings.server_port,
            reload=settings.server_reload,
            log_level=settings.log_level.lower(),
        )


if __name__ == "__main__":
    main()
