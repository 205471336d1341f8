"""PokeAPI species client.

See https://pokeapi.co/docs/v2#pokemon-species. Only the fields the gateway
reads are modelled; everything else in the payload is ignored.
"""

from pydantic import BaseModel, Field

from shared.http.client import Client
from shared.http.encoders import JSONEncoder
from shared.http.errors import APIError
from shared.http.options import Option, with_encoder, with_user_agent
from shared.metrics import upstream_errors_total, upstream_request_duration_seconds
from shared.text import format_url_path

DEFAULT_ENDPOINT = "https://pokeapi.co/api/v2"
USER_AGENT = "pokeapi/sdk-test"
SERVICE = "pokeapi"


class NamedAPIResource(BaseModel):
    name: str = ""
    url: str = ""


class FlavorText(BaseModel):
    flavor_text: str = ""
    language: NamedAPIResource = Field(default_factory=NamedAPIResource)


class Species(BaseModel):
    name: str
    is_legendary: bool = False
    habitat: NamedAPIResource | None = None
    flavor_text_entries: list[FlavorText] = Field(default_factory=list)

    def description(self, lang: str) -> str:
        """First flavor text written in ``lang`` (case-insensitive), or ``""``."""
        if not lang:
            return ""
        for entry in self.flavor_text_entries:
            if entry.language.name.casefold() == lang.casefold():
                return entry.flavor_text
        return ""


class PokeAPIClient:
    def __init__(self, endpoint: str = DEFAULT_ENDPOINT, *opts: Option) -> None:
        self._client = Client(
            endpoint,
            *opts,
            with_encoder(JSONEncoder()),
            with_user_agent(USER_AGENT),
        )

    async def species(self, reference: str) -> Species:
        path = format_url_path("/pokemon-species/{}/", reference)
        with upstream_request_duration_seconds.labels(service=SERVICE).time():
            try:
                return await self._client.call("GET", path, receiver=Species)
            except APIError as exc:
                upstream_errors_total.labels(service=SERVICE, code=str(exc.code)).inc()
                raise

    async def aclose(self) -> None:
        await self._client.aclose()
