"""Generic client for calling upstream REST APIs.

``Client.call`` builds the request (query string, credentials, body,
headers), runs it through a tenacity retry loop driven by the configured
backoff strategy and retry policy, and decodes the response into the
requested receiver type. Every failure is raised as an ``APIError``.

The transport is wrapped in a ``CacheTransport`` once, at construction, so
cached responses flow through the same pipeline as network ones.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, TypeVar

import httpx
from tenacity import AsyncRetrying, RetryCallState
from tenacity.retry import retry_base

from shared.http import errors
from shared.http.cache import CacheTransport
from shared.http.errors import REQUEST_ID_HEADER, APIError, ErrorCode
from shared.http.options import Option, Options, apply_options
from shared.http.query import encode_query

T = TypeVar("T")

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

RETRYABLE_STATUS_CODES = {500, 503, 502, 409}
RATE_LIMITED = 429


class DeadlineExceeded(TimeoutError):
    def __init__(self) -> None:
        super().__init__("deadline exceeded")


@dataclass
class RequestContext:
    """State owned by a single call."""

    method: str
    path: str
    data: Any
    receiver: Any
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    # event loop time; None means no deadline
    deadline: float | None = None
    attempts: int = 0


@dataclass
class Attempt:
    """Outcome of one round trip: a response, an error, or both."""

    response: httpx.Response | None = None
    error: APIError | None = None


def is_write_method(method: str) -> bool:
    return method in WRITE_METHODS


def should_retry(
    error: APIError | None,
    response: httpx.Response | None,
    retries: int,
    max_retries: int,
) -> bool:
    """Decide whether a finished attempt should be retried.

    No response at all (timeouts, refused connections) is always retried.
    429 is never retried: more requests would only add to the rate limit
    pressure.
    """
    if retries >= max_retries:
        return False
    if response is None:
        return True
    if response.status_code in RETRYABLE_STATUS_CODES:
        return True
    if response.status_code == RATE_LIMITED:
        return False
    return error is not None


class RetryPolicy(retry_base):
    """tenacity retry strategy delegating to ``should_retry``."""

    def __init__(self, max_retries: int) -> None:
        self.max_retries = max_retries

    def __call__(self, retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or outcome.failed:
            return False
        attempt: Attempt = outcome.result()
        return should_retry(
            attempt.error,
            attempt.response,
            retry_state.attempt_number - 1,
            self.max_retries,
        )


class Client:
    """Calls one upstream API rooted at ``endpoint``.

    Immutable after construction and safe to share between concurrent calls.
    """

    def __init__(self, endpoint: str, *opts: Option) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.options: Options = apply_options(*opts)
        self.transport = CacheTransport(self.options.transport or httpx.AsyncHTTPTransport())
        self._http = httpx.AsyncClient(transport=self.transport, follow_redirects=True)

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def call(
        self,
        method: str,
        path: str,
        data: Any = None,
        receiver: type[T] | None = None,
        *,
        timeout: float | None = None,
    ) -> T | None:
        """Perform ``method`` on ``path`` and decode the response into ``receiver``.

        ``data`` is always encoded into the query string, and is additionally
        encoded as the body for write methods. ``timeout`` narrows the
        configured per-request timeout for this call only.

        Raises:
            APIError: on any failure, after retries are exhausted.
        """
        if not path.startswith("/"):
            path = "/" + path

        ctx = RequestContext(
            method=method.upper(),
            path=path,
            data=data,
            receiver=receiver,
            deadline=self._deadline(timeout),
        )
        request = self._build_request(ctx)
        response = await self._do(request, ctx)
        return self._decode(request, response, ctx)

    def _deadline(self, timeout: float | None) -> float | None:
        timeouts = [t for t in (self.options.timeout or None, timeout) if t is not None]
        if not timeouts:
            return None
        return asyncio.get_running_loop().time() + min(timeouts)

    def _build_request(self, ctx: RequestContext) -> httpx.Request:
        opts = self.options

        try:
            params = encode_query(ctx.data)
        except Exception as exc:  # noqa: BLE001
            raise errors.from_source(
                ErrorCode.ENCODING_ERROR, ctx.path, ctx.method, ctx.request_id, exc
            ) from exc

        body = None
        headers = {REQUEST_ID_HEADER: ctx.request_id}
        if is_write_method(ctx.method):
            try:
                body = opts.encoder.encode(ctx.data)
            except Exception as exc:  # noqa: BLE001
                raise errors.from_source(
                    ErrorCode.ENCODING_ERROR, ctx.path, ctx.method, ctx.request_id, exc
                ) from exc
            headers["Content-Type"] = opts.encoder.content_type

        try:
            # built once with its body so httpx sets Content-Length from it;
            # bytes content is replayed identically on every retry and redirect
            request = httpx.Request(
                ctx.method,
                self.endpoint + ctx.path,
                params=params or None,
                headers=headers,
                content=body,
            )
            if opts.credentials is not None:
                opts.credentials.apply(request)
        except Exception as exc:  # noqa: BLE001
            raise errors.from_source(
                ErrorCode.REQUEST_ERROR, ctx.path, ctx.method, ctx.request_id, exc
            ) from exc

        request.headers["Host"] = request.url.netloc.decode("ascii")
        request.headers["Accept"] = opts.encoder.accept
        request.headers["Accept-Language"] = opts.language
        if opts.user_agent:
            request.headers["User-Agent"] = opts.user_agent
        request.headers[REQUEST_ID_HEADER] = ctx.request_id
        return request

    async def _do(self, request: httpx.Request, ctx: RequestContext) -> httpx.Response:
        log = self.options.logger
        log.info("Requesting %s %s%s", request.method, request.url.host, request.url.path)

        retrying = AsyncRetrying(
            retry=RetryPolicy(self.options.max_retries),
            wait=self.options.backoff,
            sleep=self._sleeper(ctx),
            before_sleep=self._log_retry(request),
        )
        try:
            attempt: Attempt = await retrying(self._attempt, request, ctx)
        except TimeoutError as exc:
            attempt = Attempt(
                error=errors.from_request(request, ErrorCode.HTTP_CLIENT_ERROR, DeadlineExceeded())
            )
            attempt.error.__cause__ = exc

        if attempt.error is not None:
            log.error("Request failed with error: %s", attempt.error)
            raise attempt.error
        return attempt.response

    async def _attempt(self, request: httpx.Request, ctx: RequestContext) -> Attempt:
        retry = ctx.attempts
        ctx.attempts += 1
        start = time.perf_counter()
        try:
            async with asyncio.timeout_at(ctx.deadline):
                response = await self._http.send(request)
        except TimeoutError:
            return Attempt(
                error=errors.from_request(request, ErrorCode.HTTP_CLIENT_ERROR, DeadlineExceeded())
            )
        except (httpx.HTTPError, httpx.StreamError) as exc:
            return Attempt(error=errors.from_request(request, ErrorCode.HTTP_CLIENT_ERROR, exc))
        except Exception as exc:  # noqa: BLE001
            return Attempt(error=errors.from_request(request, ErrorCode.HTTP_CLIENT_ERROR, exc))
        finally:
            self.options.logger.info(
                "Request completed in %.2fms (retry: %d)",
                (time.perf_counter() - start) * 1000,
                retry,
            )

        if response.status_code >= 400:
            return Attempt(
                response=response,
                error=errors.from_response(request, response, response.content),
            )
        return Attempt(response=response)

    def _sleeper(self, ctx: RequestContext):
        async def sleep(seconds: float) -> None:
            loop = asyncio.get_running_loop()
            if ctx.deadline is not None and loop.time() >= ctx.deadline:
                raise DeadlineExceeded()
            async with asyncio.timeout_at(ctx.deadline):
                await asyncio.sleep(seconds)

        return sleep

    def _log_retry(self, request: httpx.Request):
        def before_sleep(retry_state: RetryCallState) -> None:
            self.options.logger.warning(
                "Initiating retry %d for request %s %s%s after sleeping %.3fs",
                retry_state.attempt_number,
                request.method,
                request.url.host,
                request.url.path,
                retry_state.next_action.sleep if retry_state.next_action else 0.0,
            )

        return before_sleep

    def _decode(
        self,
        request: httpx.Request,
        response: httpx.Response,
        ctx: RequestContext,
    ) -> Any:
        if ctx.receiver is None:
            return None
        body = response.content
        try:
            return self.options.encoder.decode(body, ctx.receiver)
        except Exception as exc:  # noqa: BLE001
            err = errors.from_decode_failure(request, response, body, exc)
            self.options.logger.error("Request failed with error: %s", err)
            raise err from exc
