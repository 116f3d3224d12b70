"""Sending prepared requests with ``requests`` off the UI thread."""

from __future__ import annotations

import logging
import queue
import re
import threading
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum, auto
from http import HTTPStatus
from pathlib import Path
from typing import Callable, Optional

import requests

from perseus.config import Config
from perseus.draft import BODYLESS_METHODS, PreparedRequest
from perseus.kvtable import RowKind

logger = logging.getLogger(__name__)

# RFC 7230 token characters.
_METHOD_RE = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")


@dataclass
class ResponseData:
    status: int
    status_text: str
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: str = ""
    duration_ms: int = 0

    @property
    def status_line(self) -> str:
        return f"{self.status} {self.status_text}".strip()


class ErrorKind(Enum):
    INVALID_METHOD = auto()
    INVALID_URL = auto()
    CONNECTION = auto()
    TIMEOUT = auto()
    REDIRECT = auto()
    DECODE = auto()
    FILE = auto()
    OTHER = auto()
    CANCELLED = auto()


class RequestError(Exception):
    """A send failed; ``message`` is what the response area shows."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


def _host(url: str) -> str:
    return requests.utils.urlparse(url).hostname or ""


def _translate(exc: requests.RequestException, url: str) -> RequestError:
    if isinstance(exc, requests.Timeout):
        return RequestError(ErrorKind.TIMEOUT, "Request timed out")
    if isinstance(exc, requests.ConnectionError):
        host = _host(url)
        return RequestError(
            ErrorKind.CONNECTION, f"Connection failed: {host}" if host else "Connection failed"
        )
    if isinstance(exc, requests.exceptions.MissingSchema):
        return RequestError(ErrorKind.INVALID_URL, "Invalid URL: missing scheme (try https://)")
    if isinstance(exc, (requests.exceptions.InvalidSchema, requests.exceptions.InvalidURL)):
        return RequestError(ErrorKind.INVALID_URL, f"Invalid URL: {exc}")
    if isinstance(exc, requests.TooManyRedirects):
        return RequestError(ErrorKind.REDIRECT, "Too many redirects")
    if isinstance(exc, requests.exceptions.ContentDecodingError):
        return RequestError(ErrorKind.DECODE, "Failed to decode response body")
    return RequestError(ErrorKind.OTHER, f"Request failed: {exc}")


def _session_options(config: Config) -> dict:
    options: dict = {
        "timeout": config.http.timeout or None,
        "allow_redirects": config.http.follow_redirects,
    }
    if config.proxy.url:
        proxies = {"http": config.proxy.url, "https": config.proxy.url}
        if config.proxy.no_proxy:
            proxies["no_proxy"] = config.proxy.no_proxy
        options["proxies"] = proxies
    ssl = config.ssl
    if not ssl.verify:
        options["verify"] = False
    elif ssl.ca_cert is not None:
        options["verify"] = str(ssl.ca_cert)
    if ssl.client_cert is not None and ssl.client_key is not None:
        options["cert"] = (str(ssl.client_cert), str(ssl.client_key))
    return options


def _open(stack: ExitStack, path: str):
    try:
        return stack.enter_context(Path(path).expanduser().open("rb"))
    except OSError as exc:
        raise RequestError(ErrorKind.FILE, f"Failed to read file {path}: {exc.strerror}") from exc


def send_request(
    prepared: PreparedRequest,
    config: Optional[Config] = None,
    session: Optional[requests.Session] = None,
) -> ResponseData:
    """Perform *prepared* and return the response or raise RequestError."""
    config = config or Config()
    method = prepared.method
    if not _METHOD_RE.fullmatch(method):
        raise RequestError(ErrorKind.INVALID_METHOD, f"Invalid HTTP method '{method}'")
    url = prepared.url.strip()
    if not url:
        raise RequestError(ErrorKind.INVALID_URL, "Invalid URL: empty")

    session = session or requests.Session()
    session.max_redirects = config.http.max_redirects
    options = _session_options(config)
    headers = dict(prepared.headers)

    with ExitStack() as stack:
        if method not in BODYLESS_METHODS:
            if prepared.body is not None:
                options["data"] = prepared.body.encode("utf-8")
            elif prepared.form is not None:
                options["data"] = prepared.form
            elif prepared.parts is not None:
                # (None, value) makes requests emit a plain form field.
                options["files"] = [
                    (k, (Path(v).name, _open(stack, v)) if kind == RowKind.FILE else (None, v))
                    for k, kind, v in prepared.parts
                ]
            elif prepared.body_file is not None:
                options["data"] = _open(stack, prepared.body_file)
        if prepared.auth is not None:
            options["auth"] = prepared.auth

        logger.info("%s %s", method, url)
        start = time.perf_counter()
        try:
            resp = session.request(method, url, headers=headers, **options)
            body = resp.text
        except requests.RequestException as exc:
            error = _translate(exc, url)
            logger.info("request failed: %s", error.message)
            raise error from exc
        duration_ms = int((time.perf_counter() - start) * 1000)

    try:
        reason = resp.reason or HTTPStatus(resp.status_code).phrase
    except ValueError:
        reason = ""
    logger.info("%s %s -> %d in %dms", method, url, resp.status_code, duration_ms)
    return ResponseData(
        status=resp.status_code,
        status_text=reason,
        headers=list(resp.headers.items()),
        body=body,
        duration_ms=duration_ms,
    )


@dataclass
class DispatchResult:
    task_id: int
    response: Optional[ResponseData] = None
    error: Optional[RequestError] = None
    cancelled: bool = False


class RequestDispatcher:
    """At most one in-flight request, delivered through a single-slot queue.

    Each task writes into its own ``queue.Queue(maxsize=1)`` and sends over
    its own session. Cancelling forgets the queue, so a late result from an
    abandoned thread is never observed, and closes the session. Closing
    drops pooled connections but cannot interrupt a socket read already in
    progress: the abandoned thread lives until its response arrives or the
    configured timeout fires (never, with ``timeout = 0``).
    """

    def __init__(
        self,
        send: Callable[..., ResponseData] = send_request,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self._send = send
        self._session_factory = session_factory
        self._task_id = 0
        self._slot: Optional[queue.Queue] = None
        self._session: Optional[requests.Session] = None
        self._cancelled: Optional[DispatchResult] = None

    @property
    def in_flight(self) -> bool:
        return self._slot is not None

    def start(self, prepared: PreparedRequest, config: Optional[Config] = None) -> int:
        if self._slot is not None:
            logger.debug("superseding request task %d", self._task_id)
            self._close_session()
        self._cancelled = None
        self._task_id += 1
        task_id = self._task_id
        slot: queue.Queue = queue.Queue(maxsize=1)
        session = self._session_factory()
        self._slot = slot
        self._session = session

        def run() -> None:
            try:
                result = DispatchResult(task_id, response=self._send(prepared, config, session))
            except RequestError as exc:
                result = DispatchResult(task_id, error=exc)
            except Exception as exc:
                logger.exception("request task %d crashed", task_id)
                result = DispatchResult(
                    task_id, error=RequestError(ErrorKind.OTHER, f"Request failed: {exc}")
                )
            finally:
                session.close()
            slot.put(result)

        threading.Thread(target=run, name=f"perseus-request-{task_id}", daemon=True).start()
        return task_id

    def _close_session(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def poll(self) -> Optional[DispatchResult]:
        """Non-blocking; returns the finished result of the current task, if any."""
        if self._cancelled is not None:
            result, self._cancelled = self._cancelled, None
            return result
        if self._slot is None:
            return None
        try:
            result = self._slot.get_nowait()
        except queue.Empty:
            return None
        self._slot = None
        self._session = None
        return result

    def wait(self, timeout: Optional[float] = None) -> Optional[DispatchResult]:
        """Block until the current task finishes; used by tests and shutdown."""
        if self._slot is None:
            return self.poll()
        try:
            result = self._slot.get(timeout=timeout)
        except queue.Empty:
            return None
        self._slot = None
        self._session = None
        return result

    def cancel(self) -> bool:
        if self._slot is None:
            return False
        logger.info("cancelling request task %d", self._task_id)
        self._slot = None
        self._close_session()
        self._cancelled = DispatchResult(self._task_id, cancelled=True)
        return True
