"""Fun Translations client.

See https://funtranslations.com/api. Requests without an API secret are
served on the public, heavily rate limited plan.
"""

from enum import StrEnum

from pydantic import BaseModel, Field

from shared.http.client import Client
from shared.http.credentials import from_header
from shared.http.encoders import JSONEncoder
from shared.http.errors import APIError
from shared.http.options import Option, with_credentials, with_encoder, with_user_agent
from shared.metrics import upstream_errors_total, upstream_request_duration_seconds
from shared.text import format_url_path

DEFAULT_ENDPOINT = "https://api.funtranslations.com/translate"
USER_AGENT = "translate/sdk-test"
AUTH_HEADER = "X-Funtranslations-Api-Secret"
SERVICE = "funtranslations"


class TranslationMethod(StrEnum):
    SHAKESPEARE = "shakespeare"
    YODA = "yoda"

    @classmethod
    def _missing_(cls, value: object) -> "TranslationMethod | None":
        if isinstance(value, str):
            for member in cls:
                if member.value == value.lower():
                    return member
        return None


class TranslationRequest(BaseModel):
    text: str

    def to_query_parameters(self) -> list[tuple[str, str]]:
        return [("text", self.text)]


class TranslationContents(BaseModel):
    translated: str = ""
    text: str = ""
    translation: TranslationMethod | None = None


class TranslationSuccess(BaseModel):
    total: int = 0


class TranslationResponse(BaseModel):
    success: TranslationSuccess = Field(default_factory=TranslationSuccess)
    contents: TranslationContents = Field(default_factory=TranslationContents)


class TranslationClient:
    def __init__(
        self,
        token: str = "",
        endpoint: str = DEFAULT_ENDPOINT,
        *opts: Option,
    ) -> None:
        self._client = Client(
            endpoint,
            *opts,
            with_encoder(JSONEncoder()),
            with_user_agent(USER_AGENT),
            with_credentials(from_header(AUTH_HEADER, token)),
        )

    async def translate(self, text: str, method: TranslationMethod | str) -> str:
        """Translate ``text`` and return only the translated output.

        Raises:
            ValueError: ``method`` is not a known translation method.
            APIError: the upstream call failed.
        """
        method = TranslationMethod(method)
        path = format_url_path("/{}.json", method.value)
        with upstream_request_duration_seconds.labels(service=SERVICE).time():
            try:
                response = await self._client.call(
                    "GET", path, TranslationRequest(text=text), TranslationResponse
                )
            except APIError as exc:
                upstream_errors_total.labels(service=SERVICE, code=str(exc.code)).inc()
                raise
        return response.contents.translated

    async def aclose(self) -> None:
        await self._client.aclose()
