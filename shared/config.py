"""Application configuration with startup validation.

All config is validated at import time via pydantic-settings.
Invalid backoff parameters or an unknown response format cause an
immediate, clear error instead of failing on the first upstream retry.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings

from shared.http.backoff import Backoff, ConstantBackoff, ExponentialBackoff


class Settings(BaseSettings):
    model_config = {"env_prefix": "GW_", "env_file": ".env"}

    # Server
    host: str = "0.0.0.0"
    port: int = 5555
    # 0 (none), 1 (error), 2 (warn), 3 (info), 4 (debug)
    log_level: int = 1
    log_json: bool = True

    # Responses: "json" or "xml"
    response_format: str = "json"

    # PokeAPI
    pokeapi_base_url: str = "https://pokeapi.co/api/v2"

    # Fun Translations; an empty key restricts usage to the free plan
    translation_base_url: str = "https://api.funtranslations.com/translate"
    translation_api_key: str = ""

    # Upstream calls
    accept_language: str = "en-GB"
    request_timeout_seconds: float = 0.0
    max_retries: int = 2

    # Backoff: "constant" or "exponential"
    backoff_strategy: str = "constant"
    backoff_initial_seconds: float = 0.0
    backoff_max_seconds: float = 2.0
    backoff_growth_rate: float = 0.5

    @model_validator(mode="after")
    def validate_upstream_config(self) -> "Settings":
        """Fail fast on settings that would only break once traffic arrives."""
        if self.response_format not in ("json", "xml"):
            raise ValueError(
                f"response_format must be 'json' or 'xml', got {self.response_format!r}"
            )
        if self.backoff_strategy not in ("constant", "exponential"):
            raise ValueError(
                f"backoff_strategy must be 'constant' or 'exponential', "
                f"got {self.backoff_strategy!r}"
            )
        self.build_backoff()
        return self

    def build_backoff(self) -> Backoff:
        if self.backoff_strategy == "exponential":
            return ExponentialBackoff(
                self.backoff_initial_seconds,
                self.backoff_max_seconds,
                self.backoff_growth_rate,
            )
        return ConstantBackoff(self.backoff_initial_seconds)


settings = Settings()
