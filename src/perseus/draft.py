"""In-memory model of the request being edited."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum

from perseus.buffer import FieldBuffer
from perseus.environment import substitute
from perseus.kvtable import KvTable, RowKind
from perseus.sync import (
    encode_component,
    split_url,
    sync_table_from_url,
    url_from_table,
)

logger = logging.getLogger(__name__)

STANDARD_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")
BODYLESS_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class AuthType(Enum):
    NONE = "noauth"
    BEARER = "bearer"
    BASIC = "basic"
    API_KEY = "apikey"

    @property
    def label(self) -> str:
        return _AUTH_LABELS[self]


_AUTH_LABELS = {
    AuthType.NONE: "No Auth",
    AuthType.BEARER: "Bearer Token",
    AuthType.BASIC: "Basic Auth",
    AuthType.API_KEY: "API Key",
}


class ApiKeyLocation(Enum):
    HEADER = "header"
    QUERY = "query"


class BodyMode(Enum):
    RAW = "raw"
    JSON = "json"
    XML = "xml"
    FORM_URLENCODED = "urlencoded"
    MULTIPART = "formdata"
    BINARY = "file"

    @property
    def label(self) -> str:
        return _BODY_LABELS[self]

    @property
    def is_text(self) -> bool:
        return self in (BodyMode.RAW, BodyMode.JSON, BodyMode.XML)


_BODY_LABELS = {
    BodyMode.RAW: "Raw",
    BodyMode.JSON: "JSON",
    BodyMode.XML: "XML",
    BodyMode.FORM_URLENCODED: "Form URL-Encoded",
    BodyMode.MULTIPART: "Multipart Form",
    BodyMode.BINARY: "Binary File",
}

_CONTENT_TYPES = {
    BodyMode.RAW: "text/plain",
    BodyMode.JSON: "application/json",
    BodyMode.XML: "application/xml",
    BodyMode.BINARY: "application/octet-stream",
}


@dataclass
class PreparedRequest:
    """Send-time copy of a draft with every placeholder resolved."""

    method: str
    url: str
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: str | None = None
    form: list[tuple[str, str]] | None = None
    parts: list[tuple[str, RowKind, str]] | None = None
    body_file: str | None = None
    auth: tuple[str, str] | None = None
    unresolved: list[str] = field(default_factory=list)


def parse_headers(text: str) -> list[tuple[str, str]]:
    """``Key: Value`` lines to pairs.

    Blank lines and lines starting with ``#`` (disabled headers) are
    skipped; lines without a colon are dropped.
    """
    pairs: list[tuple[str, str]] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition(":")
        if not sep or not key.strip():
            logger.info("ignoring malformed header line: %r", line)
            continue
        pairs.append((key.strip(), value.strip()))
    return pairs


class RequestDraft:
    """Method, URL, params, headers, auth and body of one request.

    Each kind of body storage keeps its own buffer or table for the life
    of the draft, so switching ``body_mode`` back and forth never loses
    anything.
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.method: str = "GET"
        self.url = FieldBuffer(single_line=True)
        self.params = KvTable()
        self.headers = FieldBuffer()
        self.auth_type: AuthType = AuthType.NONE
        self.bearer_token = FieldBuffer(single_line=True)
        self.basic_username = FieldBuffer(single_line=True)
        self.basic_password = FieldBuffer(single_line=True)
        self.api_key_name = FieldBuffer(single_line=True)
        self.api_key_value = FieldBuffer(single_line=True)
        self.api_key_location: ApiKeyLocation = ApiKeyLocation.HEADER
        self.body_mode: BodyMode = BodyMode.RAW
        self.body_text = FieldBuffer()
        self.form = KvTable()
        self.multipart = KvTable(typed=True)
        self.body_file = FieldBuffer(single_line=True)

    # -- Method ------------------------------------------------------------

    def set_method(self, method: str) -> None:
        method = method.strip().upper()
        if method:
            self.method = method

    @property
    def is_custom_method(self) -> bool:
        return self.method not in STANDARD_METHODS

    # -- URL / params ------------------------------------------------------

    def set_url(self, url: str) -> None:
        self.url.set_content(url)
        self.sync_params_from_url()

    def sync_params_from_url(self) -> None:
        sync_table_from_url(self.url.get_content(), self.params)

    def sync_url_from_params(self) -> None:
        current = self.url.get_content()
        rebuilt = url_from_table(current, self.params)
        if rebuilt != current:
            self.url.set_content(rebuilt)

    # -- Body --------------------------------------------------------------

    def set_body_mode(self, mode: BodyMode) -> None:
        self.body_mode = mode

    def content_type(self) -> str | None:
        """Content-Type implied by the body mode (multipart/form set their own)."""
        return _CONTENT_TYPES.get(self.body_mode)

    def json_valid(self) -> bool | None:
        """Advisory JSON check of the shared text body; never mutates it."""
        if self.body_mode != BodyMode.JSON:
            return None
        text = self.body_text.get_content()
        if not text.strip():
            return None
        try:
            json.loads(text)
        except ValueError:
            return False
        return True

    def has_header(self, name: str) -> bool:
        name = name.lower()
        return any(k.lower() == name for k, _ in parse_headers(self.headers.get_content()))

    # -- Send --------------------------------------------------------------

    def prepare(self, variables: dict[str, str] | None = None) -> PreparedRequest:
        """Resolve placeholders on copies of every field.

        The draft's buffers keep their raw ``{{var}}`` text.
        """
        variables = variables or {}
        unresolved: list[str] = []

        def sub(text: str) -> str:
            result, missing = substitute(text, variables)
            unresolved.extend(n for n in missing if n not in unresolved)
            return result

        url = sub(self.url.get_content().strip())
        headers = [(sub(k), sub(v)) for k, v in parse_headers(self.headers.get_content())]
        prepared = PreparedRequest(method=self.method, url=url, headers=headers)

        if self.auth_type == AuthType.BEARER:
            token = sub(self.bearer_token.get_content())
            headers.append(("Authorization", f"Bearer {token}"))
        elif self.auth_type == AuthType.BASIC:
            prepared.auth = (
                sub(self.basic_username.get_content()),
                sub(self.basic_password.get_content()),
            )
        elif self.auth_type == AuthType.API_KEY:
            name = sub(self.api_key_name.get_content()).strip()
            value = sub(self.api_key_value.get_content())
            if name and self.api_key_location == ApiKeyLocation.HEADER:
                headers.append((name, value))
            elif name:
                prepared.url = _append_query(url, name, value)

        if self.method not in BODYLESS_METHODS:
            self._prepare_body(prepared, sub)

        prepared.unresolved = unresolved
        return prepared

    def _prepare_body(self, prepared: PreparedRequest, sub) -> None:
        mode = self.body_mode
        has_body = False
        if mode.is_text:
            text = self.body_text.get_content()
            if text.strip():
                prepared.body = sub(text)
                has_body = True
        elif mode == BodyMode.FORM_URLENCODED:
            prepared.form = [(sub(r.key), sub(r.value)) for r in self.form.enabled_rows()]
        elif mode == BodyMode.MULTIPART:
            prepared.parts = [
                (sub(r.key), r.kind, sub(r.value)) for r in self.multipart.enabled_rows()
            ]
        elif mode == BodyMode.BINARY:
            path = sub(self.body_file.get_content()).strip()
            if path:
                prepared.body_file = path
                has_body = True

        content_type = self.content_type()
        if has_body and content_type and not self.has_header("content-type"):
            prepared.headers.append(("Content-Type", content_type))


def _append_query(url: str, key: str, value: str) -> str:
    base, query, fragment = split_url(url)
    extra = f"{encode_component(key)}={encode_component(value)}"
    query = f"{query}&{extra}" if query else extra
    url = f"{base}?{query}"
    if fragment is not None:
        url += f"#{fragment}"
    return url
