"""FastAPI application entry point.

Wires together: upstream clients, middleware, exception handlers, routes, metrics.
Validates config at startup.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Response
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from pokemon.adapters.pokeapi import PokeAPIClient
from pokemon.adapters.translation import TranslationClient
from pokemon.api import router as pokemon_router
from shared.config import Settings, settings
from shared.exceptions import GatewayError
from shared.http.encoders import Encoder, JSONEncoder, XMLEncoder
from shared.http.errors import APIError
from shared.http.options import (
    Option,
    with_backoff,
    with_language,
    with_logger,
    with_max_retries,
    with_timeout,
)
from shared.logging import configure_logging, level_from_cli
from shared.metrics import create_metrics_app
from shared.middleware import (
    AccessLogMiddleware,
    RequestIdMiddleware,
    api_error_handler,
    gateway_error_handler,
    http_exception_handler,
    request_validation_handler,
)

logger = structlog.get_logger()


def upstream_options(config: Settings) -> list[Option]:
    """Client options shared by every upstream service."""
    return [
        with_max_retries(config.max_retries),
        with_backoff(config.build_backoff()),
        with_timeout(config.request_timeout_seconds),
        with_language(config.accept_language),
        with_logger(structlog.get_logger("upstream")),
    ]


def response_encoder(config: Settings) -> Encoder:
    if config.response_format == "xml":
        return XMLEncoder()
    return JSONEncoder()


def create_app(config: Settings = settings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown lifecycle."""
        configure_logging(level=level_from_cli(config.log_level), json_output=config.log_json)
        opts = upstream_options(config)
        app.state.pokeapi = PokeAPIClient(config.pokeapi_base_url, *opts)
        app.state.translator = TranslationClient(
            config.translation_api_key, config.translation_base_url, *opts
        )
        logger.info(
            "app_starting",
            pokeapi=config.pokeapi_base_url,
            translation=config.translation_base_url,
            max_retries=config.max_retries,
            backoff=config.backoff_strategy,
        )
        try:
            yield
        finally:
            logger.info("app_shutting_down")
            await app.state.pokeapi.aclose()
            await app.state.translator.aclose()

    app = FastAPI(
        title="Pokédex Gateway API",
        description=(
            "Looks up Pokémon species on PokeAPI and optionally runs their "
            "description through the Fun Translations API."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.response_encoder = response_encoder(config)

    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # All errors are written in the {"request_id", "error"} envelope
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    app.include_router(pokemon_router)

    @app.get("/status")
    async def status():
        return Response(status_code=200)

    app.mount("/metrics", create_metrics_app())
    return app


app = create_app()
