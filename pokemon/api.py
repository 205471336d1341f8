"""FastAPI router for the Pokémon domain.

Endpoints:
- GET /pokemon/{name}             species summary
- GET /pokemon/{name}/translated  species summary with a fun translation
"""

import time
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from fastapi import APIRouter, Depends, Request, Response

from pokemon.adapters.protocol import SpeciesSource, Translator
from pokemon.domain.models import SpeciesResponse
from shared.exceptions import InvalidRequestError
from shared.http.errors import APIError
from shared.metrics import api_requests_total, api_response_duration_seconds
from shared.responses import respond_ok, status_for

logger = structlog.get_logger()

router = APIRouter()


# --- Dependencies ---


def get_species_source(request: Request) -> SpeciesSource:
    return request.app.state.pokeapi


def get_translator(request: Request) -> Translator:
    return request.app.state.translator


# --- Helpers ---


async def _lookup(name: str, species_source: SpeciesSource) -> SpeciesResponse:
    name = name.strip()
    if not name:
        raise InvalidRequestError("pokemon name is required")
    species = await species_source.species(name)
    return SpeciesResponse.from_species(species)


async def _translate(species: SpeciesResponse, translator: Translator) -> SpeciesResponse:
    """Translate the description, keeping the original when translation fails."""
    method = species.translation_method()
    try:
        translated = await translator.translate(species.description, method)
    except APIError as exc:
        logger.warning(
            "translation_failed",
            method=str(method),
            code=str(exc.code),
            status_code=exc.status_code,
        )
        return species
    return species.model_copy(update={"description": translated})


@contextmanager
def _observed(endpoint: str, method: str = "GET") -> Iterator[None]:
    """Count the request under the status it will be answered with, errors included."""
    start_time = time.monotonic()
    status_code = 200
    try:
        yield
    except Exception as exc:
        status_code = status_for(exc)
        raise
    finally:
        api_requests_total.labels(
            endpoint=endpoint, method=method, status_code=str(status_code)
        ).inc()
        api_response_duration_seconds.labels(endpoint=endpoint).observe(
            time.monotonic() - start_time
        )


# --- Endpoints ---


@router.get("/pokemon/{name}")
async def get_pokemon(
    name: str,
    request: Request,
    species_source: SpeciesSource = Depends(get_species_source),
) -> Response:
    """Name, description, habitat and legendary status of a species."""
    with _observed("pokemon"):
        species = await _lookup(name, species_source)
    return respond_ok(request, species.model_dump())


@router.get("/pokemon/{name}/translated")
async def get_translated_pokemon(
    name: str,
    request: Request,
    species_source: SpeciesSource = Depends(get_species_source),
    translator: Translator = Depends(get_translator),
) -> Response:
    """Same as ``/pokemon/{name}`` with the description run through a fun translation."""
    with _observed("translated"):
        species = await _lookup(name, species_source)
        species = await _translate(species, translator)
    return respond_ok(request, species.model_dump())
