"""Upstream service protocols for the Pokémon domain.

The routes depend only on these protocols, never on the concrete clients,
so tests can hand in fakes through FastAPI dependency overrides.
"""

from typing import Protocol, runtime_checkable

from pokemon.adapters.pokeapi import Species
from pokemon.adapters.translation import TranslationMethod


@runtime_checkable
class SpeciesSource(Protocol):
    """Looks up a Pokémon species by name or id."""

    async def species(self, reference: str) -> Species:
        """Fetch the species identified by ``reference``.

        Raises:
            APIError: when the upstream call fails.
        """
        ...

    async def aclose(self) -> None: ...


@runtime_checkable
class Translator(Protocol):
    """Translates free text using a named method."""

    async def translate(self, text: str, method: TranslationMethod) -> str: ...

    async def aclose(self) -> None: ...
