"""The gateway's normalized view of a Pokémon species."""

from pydantic import BaseModel

from pokemon.adapters.pokeapi import Species
from pokemon.adapters.translation import TranslationMethod
from shared.text import normalise

DESCRIPTION_LANGUAGE = "en"
CAVE_HABITAT = "cave"


class SpeciesResponse(BaseModel):
    name: str
    # first English flavor text; translated on the /translated endpoint
    description: str
    habitat: str
    is_legendary: bool

    @classmethod
    def from_species(cls, species: Species) -> "SpeciesResponse":
        return cls(
            name=species.name,
            description=normalise(species.description(DESCRIPTION_LANGUAGE)),
            habitat=species.habitat.name if species.habitat else "",
            is_legendary=species.is_legendary,
        )

    def translation_method(self) -> TranslationMethod:
        """Yoda for cave dwellers and legendaries, Shakespeare for the rest."""
        if self.habitat == CAVE_HABITAT or self.is_legendary:
            return TranslationMethod.YODA
        return TranslationMethod.SHAKESPEARE
