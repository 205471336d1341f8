"""Text helpers for building upstream paths and cleaning upstream prose."""

import re
from typing import Any
from urllib.parse import quote_plus

from bs4 import BeautifulSoup

from shared.http.query import format_value

SPECIAL_CHARS = re.compile(r"[\t\r\n\f\v]+")
REPEATED_WHITESPACE = re.compile(r"\s{2,}")
SPACE_BEFORE_PUNCTUATION = re.compile(r"\s(\W+)")


def format_url_path(template: str, *params: Any) -> str:
    """Format a URL path template, query-escaping every parameter.

    >>> format_url_path("/pokemon-species/{}/", "mr mime")
    '/pokemon-species/mr+mime/'
    """
    escaped = [quote_plus(format_value(p) if p is not None else "") for p in params]
    return template.format(*escaped)


def normalise(text: str) -> str:
    """Strip markup and collapse the control characters and runs of
    whitespace that upstream flavor text is full of."""
    if not text:
        return ""
    text = BeautifulSoup(text, "html.parser").get_text()
    for pattern in (SPECIAL_CHARS, REPEATED_WHITESPACE):
        text = pattern.sub(" ", text)
    text = SPACE_BEFORE_PUNCTUATION.sub(r"\1", text)
    return text.strip()
