"""Mapping between RequestDraft and Postman v2.1 collection documents."""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Iterator

from perseus.draft import (
    ApiKeyLocation,
    AuthType,
    BodyMode,
    RequestDraft,
)
from perseus.kvtable import KvRow, RowKind

logger = logging.getLogger(__name__)

SCHEMA_URL = "https://schema.getpostman.com/json/collection/v2.1.0/collection.json"

_RAW_LANGUAGES = {BodyMode.RAW: "text", BodyMode.JSON: "json", BodyMode.XML: "xml"}


def new_id() -> str:
    return str(uuid.uuid4())


# -- Draft -> document -----------------------------------------------------


def _attr(key: str, value: str) -> dict[str, Any]:
    return {"key": key, "value": value, "type": "string"}


def _kv_entry(row: KvRow) -> dict[str, Any]:
    entry: dict[str, Any] = {"key": row.key, "value": row.value}
    if not row.enabled:
        entry["disabled"] = True
    return entry


def _headers_to_doc(text: str) -> list[dict[str, Any]]:
    headers: list[dict[str, Any]] = []
    for raw in text.splitlines():
        line = raw.strip()
        disabled = line.startswith("#")
        if disabled:
            line = line[1:].strip()
        key, sep, value = line.partition(":")
        if not sep or not key.strip():
            continue
        entry: dict[str, Any] = {"key": key.strip(), "value": value.strip()}
        if disabled:
            entry["disabled"] = True
        headers.append(entry)
    return headers


def _auth_to_doc(draft: RequestDraft) -> dict[str, Any] | None:
    if draft.auth_type == AuthType.BEARER:
        return {"type": "bearer", "bearer": [_attr("token", draft.bearer_token.get_content())]}
    if draft.auth_type == AuthType.BASIC:
        return {
            "type": "basic",
            "basic": [
                _attr("username", draft.basic_username.get_content()),
                _attr("password", draft.basic_password.get_content()),
            ],
        }
    if draft.auth_type == AuthType.API_KEY:
        return {
            "type": "apikey",
            "apikey": [
                _attr("key", draft.api_key_name.get_content()),
                _attr("value", draft.api_key_value.get_content()),
                _attr("in", draft.api_key_location.value),
            ],
        }
    return None


def _body_to_doc(draft: RequestDraft) -> dict[str, Any] | None:
    mode = draft.body_mode
    if mode.is_text:
        raw = draft.body_text.get_content()
        if not raw.strip():
            return None
        return {
            "mode": "raw",
            "raw": raw,
            "options": {"raw": {"language": _RAW_LANGUAGES[mode]}},
        }
    if mode == BodyMode.FORM_URLENCODED:
        return {"mode": "urlencoded", "urlencoded": [_kv_entry(r) for r in draft.form.filled_rows()]}
    if mode == BodyMode.MULTIPART:
        parts = []
        for row in draft.multipart.filled_rows():
            if row.kind == RowKind.FILE:
                part: dict[str, Any] = {"key": row.key, "src": row.value, "type": "file"}
            else:
                part = {"key": row.key, "value": row.value, "type": "text"}
            if not row.enabled:
                part["disabled"] = True
            parts.append(part)
        return {"mode": "formdata", "formdata": parts}
    path = draft.body_file.get_content()
    if not path.strip():
        return None
    return {"mode": "file", "file": {"src": path}}


def draft_to_request(draft: RequestDraft) -> dict[str, Any]:
    """Serialize *draft* as a Postman request object."""
    raw_url = draft.url.get_content()
    rows = draft.params.filled_rows()
    url: Any = raw_url
    if any(not r.enabled for r in rows):
        url = {"raw": raw_url, "query": [_kv_entry(r) for r in rows]}

    request: dict[str, Any] = {"method": draft.method, "url": url}
    headers = _headers_to_doc(draft.headers.get_content())
    if headers:
        request["header"] = headers
    body = _body_to_doc(draft)
    if body is not None:
        request["body"] = body
    auth = _auth_to_doc(draft)
    if auth is not None:
        request["auth"] = auth
    return request


# -- Document -> draft -----------------------------------------------------


def _attr_value(attrs: Any, key: str, default: str = "") -> str:
    if not isinstance(attrs, list):
        return default
    for attr in attrs:
        if isinstance(attr, dict) and attr.get("key") == key:
            value = attr.get("value")
            return value if isinstance(value, str) else default
    return default


def _url_raw(url: Any) -> str:
    if isinstance(url, str):
        return url
    if not isinstance(url, dict):
        return ""
    if isinstance(url.get("raw"), str):
        return url["raw"]
    host = url.get("host") or ""
    path = url.get("path") or ""
    host = ".".join(host) if isinstance(host, list) else str(host)
    path = "/".join(path) if isinstance(path, list) else str(path)
    protocol = url.get("protocol")
    raw = f"{protocol}://{host}" if protocol else host
    return f"{raw}/{path}" if path else raw


def _rows(entries: Any, *, typed: bool = False) -> list[KvRow]:
    rows: list[KvRow] = []
    if not isinstance(entries, list):
        return rows
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        kind = RowKind.FILE if typed and entry.get("type") == "file" else RowKind.TEXT
        value = entry.get("src") if kind == RowKind.FILE else entry.get("value")
        rows.append(
            KvRow(
                key=str(entry.get("key") or ""),
                value=str(value or ""),
                enabled=not entry.get("disabled", False),
                kind=kind,
            )
        )
    return rows


def _load_auth(draft: RequestDraft, auth: Any) -> None:
    if not isinstance(auth, dict):
        return
    kind = auth.get("type")
    if kind == "bearer":
        draft.auth_type = AuthType.BEARER
        draft.bearer_token.set_content(_attr_value(auth.get("bearer"), "token"))
    elif kind == "basic":
        draft.auth_type = AuthType.BASIC
        draft.basic_username.set_content(_attr_value(auth.get("basic"), "username"))
        draft.basic_password.set_content(_attr_value(auth.get("basic"), "password"))
    elif kind == "apikey":
        attrs = auth.get("apikey")
        draft.auth_type = AuthType.API_KEY
        draft.api_key_name.set_content(_attr_value(attrs, "key"))
        draft.api_key_value.set_content(_attr_value(attrs, "value"))
        location = _attr_value(attrs, "in", "header")
        draft.api_key_location = (
            ApiKeyLocation.QUERY if location == "query" else ApiKeyLocation.HEADER
        )
    elif kind not in (None, "noauth"):
        logger.info("unsupported auth type %r, loading as no auth", kind)


def _load_body(draft: RequestDraft, body: Any) -> None:
    if not isinstance(body, dict):
        return
    mode = body.get("mode")
    if mode == "raw":
        options = body.get("options")
        raw_options = options.get("raw") if isinstance(options, dict) else None
        language = raw_options.get("language") if isinstance(raw_options, dict) else None
        draft.body_mode = {"json": BodyMode.JSON, "xml": BodyMode.XML}.get(language, BodyMode.RAW)
        draft.body_text.set_content(str(body.get("raw") or ""))
    elif mode == "urlencoded":
        draft.body_mode = BodyMode.FORM_URLENCODED
        draft.form.replace_rows(_rows(body.get("urlencoded")))
    elif mode == "formdata":
        draft.body_mode = BodyMode.MULTIPART
        draft.multipart.replace_rows(_rows(body.get("formdata"), typed=True))
    elif mode == "file":
        draft.body_mode = BodyMode.BINARY
        src = body.get("file", {}).get("src") if isinstance(body.get("file"), dict) else None
        draft.body_file.set_content(str(src or ""))
    elif mode is not None:
        logger.info("unsupported body mode %r, loading as raw", mode)


def _header_lines(headers: Any) -> list[str]:
    if not isinstance(headers, list):
        return []
    lines = []
    for h in headers:
        if not isinstance(h, dict) or not h.get("key"):
            continue
        prefix = "# " if h.get("disabled") else ""
        lines.append(f"{prefix}{h['key']}: {h.get('value') or ''}")
    return lines


def draft_from_request(request: dict[str, Any] | str | None) -> RequestDraft:
    """Build a draft from a Postman request object; every field is optional.

    A bare string is the short form of a GET request to that URL.
    """
    draft = RequestDraft()
    if isinstance(request, str):
        request = {"url": request}
    if not isinstance(request, dict) or not request:
        return draft

    method = request.get("method")
    if isinstance(method, str) and method.strip():
        draft.set_method(method)

    url = request.get("url")
    draft.url.set_content(_url_raw(url))
    query = url.get("query") if isinstance(url, dict) else None
    if isinstance(query, list):
        # The stored view wins: it may hold disabled rows the URL cannot express.
        draft.params.replace_rows(_rows(query))
    else:
        draft.sync_params_from_url()

    draft.headers.set_content("\n".join(_header_lines(request.get("header"))))

    _load_auth(draft, request.get("auth"))
    _load_body(draft, request.get("body"))
    return draft


# -- Collections -----------------------------------------------------------


def new_collection(name: str) -> dict[str, Any]:
    return {"info": {"name": name, "_postman_id": new_id(), "schema": SCHEMA_URL}, "item": []}


def load_collection(path: str | Path) -> dict[str, Any]:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def write_collection(path: str | Path, collection: dict[str, Any]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(collection, indent=2, ensure_ascii=False), encoding="utf-8")


def iter_requests(items: list[dict[str, Any]], prefix: str = "") -> Iterator[tuple[str, dict[str, Any]]]:
    """Yield ``(folder/path/name, item)`` for every request item, depth first."""
    for item in items:
        name = f"{prefix}{item.get('name', '')}"
        if "request" in item:
            yield name, item
        yield from iter_requests(item.get("item") or [], prefix=f"{name}/")


def find_request(collection: dict[str, Any], name: str | None = None) -> dict[str, Any] | None:
    """First request item whose path, name or id matches (any when *name* is None)."""
    for path, item in iter_requests(collection.get("item") or []):
        if name is None or name in (path, item.get("name"), item.get("id")):
            return item
    return None


def save_request(
    collection: dict[str, Any], item_id: str | None, draft: RequestDraft, name: str | None = None
) -> dict[str, Any]:
    """Store *draft* into the item with *item_id*, appending a new item if absent."""
    item = find_request(collection, item_id) if item_id else None
    if item is None:
        item = {"id": item_id or new_id(), "name": name or draft.url.get_content() or "Untitled"}
        collection.setdefault("item", []).append(item)
    item["request"] = draft_to_request(draft)
    return item
