"""URL <-> query-parameter table synchronization.

The URL string is the source of truth for enabled parameters; the table
additionally remembers disabled rows, which the URL cannot express.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import quote, unquote

from perseus.kvtable import KvRow, KvTable

logger = logging.getLogger(__name__)

# Names limited to Postman variable characters; anything else is encoded.
PLACEHOLDER_RE = re.compile(r"\{\{[\w.-]+\}\}")

# Characters left as-is inside a query key or value.
_SAFE = "-._~!$'()*,;:@/?"


def _map_outside_placeholders(text: str, fn) -> str:
    parts: list[str] = []
    pos = 0
    for match in PLACEHOLDER_RE.finditer(text):
        parts.append(fn(text[pos : match.start()]))
        parts.append(match.group(0))
        pos = match.end()
    parts.append(fn(text[pos:]))
    return "".join(parts)


def encode_component(text: str) -> str:
    """Percent-encode *text*, leaving ``{{name}}`` placeholders untouched."""
    return _map_outside_placeholders(text, lambda s: quote(s, safe=_SAFE))


def decode_component(text: str) -> str:
    """Inverse of :func:`encode_component`."""
    return _map_outside_placeholders(text, unquote)


def split_url(url: str) -> tuple[str, str | None, str | None]:
    """Split *url* into ``(base, query, fragment)``.

    ``query`` is ``None`` when there is no ``?`` (an empty string when the
    ``?`` is present but nothing follows it); likewise for ``fragment``.
    """
    q = url.find("?")
    h = url.find("#")
    if q == -1 or (h != -1 and h < q):
        if h == -1:
            return url, None, None
        return url[:h], None, url[h + 1 :]
    base, rest = url[:q], url[q + 1 :]
    h = rest.find("#")
    if h == -1:
        return base, rest, None
    return base, rest[:h], rest[h + 1 :]


def parse_query(query: str | None) -> list[tuple[str, str]]:
    """Decode a query string into ordered pairs, dropping malformed segments."""
    if not query:
        return []
    pairs: list[tuple[str, str]] = []
    for segment in query.split("&"):
        if not segment:
            continue
        key, _, value = segment.partition("=")
        if not key:
            logger.debug("dropping query segment without key: %r", segment)
            continue
        pairs.append((decode_component(key), decode_component(value)))
    return pairs


def build_query(pairs: list[tuple[str, str]]) -> str:
    return "&".join(f"{encode_component(k)}={encode_component(v)}" for k, v in pairs)


def build_url(base: str, pairs: list[tuple[str, str]], fragment: str | None = None) -> str:
    url = base
    query = build_query(pairs)
    if query:
        url += "?" + query
    if fragment is not None:
        url += "#" + fragment
    return url


def url_from_table(url: str, table: KvTable) -> str:
    """Rebuild *url* so its query reflects the table's enabled rows."""
    base, _query, fragment = split_url(url)
    return build_url(base, table.enabled_pairs(), fragment)


def sync_table_from_url(url: str, table: KvTable) -> None:
    """Replace enabled rows with the URL's parameters.

    Disabled rows whose key does not appear in the URL are kept, still
    disabled, after the parsed rows.
    """
    parsed = parse_query(split_url(url)[1])
    keys = {k for k, _ in parsed}
    rows = [KvRow(key=k, value=v) for k, v in parsed]
    rows.extend(
        KvRow(key=r.key, value=r.value, enabled=False)
        for r in table.rows
        if not r.enabled and not r.is_empty() and r.key not in keys
    )
    table.replace_rows(rows)
