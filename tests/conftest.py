"""Shared test fixtures."""

import asyncio
import sys
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

ENDPOINT = "https://upstream.test/api"


class FakeTransport(httpx.AsyncBaseTransport):
    """Fake upstream: replays canned responses and records every request.

    ``handler`` builds a fresh response per request; otherwise ``responses``
    are returned in order, falling back to ``200 {"ok": true}``. ``delay``
    makes every round trip slow enough to trip a deadline.
    """

    def __init__(
        self,
        responses: list[httpx.Response] | None = None,
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
        delay: float = 0.0,
    ) -> None:
        self._responses = list(responses or [])
        self._handler = handler
        self.delay = delay
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self._handler is not None:
            return self._handler(request)
        if self._responses:
            return self._responses.pop(0)
        return httpx.Response(200, json={"ok": True})

    @property
    def call_count(self) -> int:
        return len(self.requests)


def status(code: int, **kwargs) -> Callable[[httpx.Request], httpx.Response]:
    """Handler answering every request with ``code``."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(code, **kwargs)

    return handler


@pytest.fixture
def species_payload() -> dict:
    """Trimmed pokemon-species/mewtwo payload."""
    return {
        "id": 150,
        "name": "mewtwo",
        "is_legendary": True,
        "habitat": {"name": "rare", "url": "https://pokeapi.co/api/v2/pokemon-habitat/5/"},
        "flavor_text_entries": [
            {
                "flavor_text": "Il a été créé par\nun scientifique.",
                "language": {"name": "fr", "url": "https://pokeapi.co/api/v2/language/5/"},
            },
            {
                "flavor_text": "It was created by\na scientist after\fyears of horrific\n"
                "gene splicing and\nDNA engineering\nexperiments .",
                "language": {"name": "en", "url": "https://pokeapi.co/api/v2/language/9/"},
            },
        ],
    }


@pytest.fixture
def translation_payload() -> dict:
    return {
        "success": {"total": 1},
        "contents": {
            "translated": "Created by a scientist,  it was.",
            "text": "It was created by a scientist.",
            "translation": "yoda",
        },
    }
