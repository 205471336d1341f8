"""HTTP-semantics-aware response cache, installed as an httpx transport.

``CacheTransport`` wraps the real transport so the client's retry loop never
has to know about caching: a fresh hit short-circuits the network call and
is otherwise indistinguishable from a network response.

Behaves as a private cache:
- only GET responses are stored; ``no-store`` (request or response) and
  ``Vary: *`` are honored
- freshness comes from ``Cache-Control: max-age`` or ``Expires`` - ``Date``
- stale entries with an ``ETag`` or ``Last-Modified`` are revalidated
  conditionally; a 304 refreshes the entry and serves the stored body
- POST/PUT/PATCH/DELETE invalidate the entry for the URL
"""

import threading
import time
from dataclasses import dataclass, field, replace
from email.utils import parsedate_to_datetime

import httpx
import structlog

logger = structlog.get_logger()

FROM_CACHE_HEADER = "X-From-Cache"

CACHEABLE_STATUS_CODES = {200, 203, 300, 301, 308, 404, 410}
UNSAFE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# headers a 304 is allowed to update on the stored response
_REFRESHABLE_HEADERS = ("cache-control", "date", "etag", "expires", "last-modified", "age")


def parse_cache_control(headers: httpx.Headers) -> dict[str, str | None]:
    """Parse ``Cache-Control`` into lower-cased directives."""
    directives: dict[str, str | None] = {}
    for value in headers.get_list("cache-control", split_commas=True):
        name, _, arg = value.strip().partition("=")
        if name:
            directives[name.lower()] = arg.strip('"') if arg else None
    return directives


def _seconds(value: str | None) -> float | None:
    try:
        return float(int(value)) if value is not None else None
    except ValueError:
        return None


def _decoded_headers(headers: httpx.Headers) -> httpx.Headers:
    """Headers describing an already decoded body; framing is recomputed on replay."""
    decoded = headers.copy()
    for name in ("content-encoding", "content-length", "transfer-encoding"):
        if name in decoded:
            del decoded[name]
    return decoded


def _http_date(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class CacheEntry:
    status_code: int
    headers: list[tuple[str, str]]
    body: bytes
    stored_at: float
    vary: dict[str, str | None] = field(default_factory=dict)

    @property
    def response_headers(self) -> httpx.Headers:
        return httpx.Headers(self.headers)

    def freshness_lifetime(self) -> float:
        headers = self.response_headers
        cc = parse_cache_control(headers)
        if "no-cache" in cc:
            return 0.0
        max_age = _seconds(cc.get("max-age"))
        if max_age is not None:
            return max_age
        expires = _http_date(headers.get("expires"))
        if expires is None:
            return 0.0
        date = _http_date(headers.get("date")) or self.stored_at
        return max(0.0, expires - date)

    def current_age(self, now: float) -> float:
        initial = _seconds(self.response_headers.get("age")) or 0.0
        return initial + max(0.0, now - self.stored_at)

    def is_fresh(self, now: float) -> bool:
        return self.freshness_lifetime() > self.current_age(now)

    def has_validators(self) -> bool:
        headers = self.response_headers
        return "etag" in headers or "last-modified" in headers

    def matches(self, request: httpx.Request) -> bool:
        return all(request.headers.get(name) == value for name, value in self.vary.items())

    def refreshed(self, headers: httpx.Headers, now: float) -> "CacheEntry":
        merged = self.response_headers
        for name in _REFRESHABLE_HEADERS:
            if name in headers:
                merged[name] = headers[name]
        return replace(self, headers=list(merged.multi_items()), stored_at=now)

    def to_response(self, request: httpx.Request) -> httpx.Response:
        headers = self.response_headers
        headers[FROM_CACHE_HEADER] = "1"
        return httpx.Response(
            self.status_code,
            headers=headers,
            content=self.body,
            request=request,
        )


class MemoryCache:
    """Thread-safe in-memory store of cache entries keyed by URL."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class CacheTransport(httpx.AsyncBaseTransport):
    def __init__(
        self,
        transport: httpx.AsyncBaseTransport,
        cache: MemoryCache | None = None,
    ) -> None:
        self.transport = transport
        self.cache = cache if cache is not None else MemoryCache()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        key = self._key(request)

        if request.method in UNSAFE_METHODS:
            response = await self.transport.handle_async_request(request)
            if response.status_code < 400:
                self.cache.delete(key)
            return response

        if request.method != "GET":
            return await self.transport.handle_async_request(request)

        request_cc = parse_cache_control(request.headers)
        if "no-store" in request_cc:
            return await self.transport.handle_async_request(request)

        now = time.time()
        entry = self.cache.get(key)
        if entry is not None and not entry.matches(request):
            entry = None

        if entry is not None:
            revalidate = "no-cache" in request_cc or _seconds(request_cc.get("max-age")) == 0
            if not revalidate and entry.is_fresh(now):
                logger.debug("cache_hit", url=key)
                return entry.to_response(request)
            if entry.has_validators():
                request = self._conditional(request, entry)
            else:
                entry = None

        response = await self.transport.handle_async_request(request)

        if entry is not None and response.status_code == 304:
            await response.aclose()
            entry = entry.refreshed(response.headers, time.time())
            self.cache.set(key, entry)
            logger.debug("cache_revalidated", url=key)
            return entry.to_response(request)

        if not self._storable(request_cc, response):
            return response

        body = await response.aread()
        await response.aclose()
        headers = _decoded_headers(response.headers)
        vary = {
            name: request.headers.get(name)
            for name in response.headers.get_list("vary", split_commas=True)
        }
        stored = CacheEntry(
            status_code=response.status_code,
            headers=list(headers.multi_items()),
            body=body,
            stored_at=time.time(),
            vary=vary,
        )
        self.cache.set(key, stored)
        return httpx.Response(
            response.status_code,
            headers=headers,
            content=body,
            request=request,
            extensions={
                k: v
                for k, v in response.extensions.items()
                if k in ("http_version", "reason_phrase")
            },
        )

    async def aclose(self) -> None:
        await self.transport.aclose()

    @staticmethod
    def _key(request: httpx.Request) -> str:
        return str(request.url)

    @staticmethod
    def _conditional(request: httpx.Request, entry: CacheEntry) -> httpx.Request:
        headers = request.headers.copy()
        stored = entry.response_headers
        if "etag" in stored:
            headers["If-None-Match"] = stored["etag"]
        if "last-modified" in stored:
            headers["If-Modified-Since"] = stored["last-modified"]
        return httpx.Request(
            request.method,
            request.url,
            headers=headers,
            stream=request.stream,
            extensions=request.extensions,
        )

    @staticmethod
    def _storable(request_cc: dict[str, str | None], response: httpx.Response) -> bool:
        if response.status_code not in CACHEABLE_STATUS_CODES:
            return False
        response_cc = parse_cache_control(response.headers)
        if "no-store" in request_cc or "no-store" in response_cc:
            return False
        if "*" in response.headers.get_list("vary", split_commas=True):
            return False
        has_freshness = "max-age" in response_cc or "expires" in response.headers
        has_validators = "etag" in response.headers or "last-modified" in response.headers
        return has_freshness or has_validators
