"""
Secondary indices over the entry store and the full-text predicate.

Positions are the 0-based order in which entries were appended. Every
per-dimension list is kept in insertion order.
"""

import base64
import binascii
import threading
from collections import defaultdict
from typing import Any, Dict, Hashable, List, Optional, Sequence

from .classifier import classify_entry, parse_url, url_host
from .models import HarEntry


DIMENSIONS = ('method', 'status', 'mime_type', 'host', 'path', 'category')

# Request and response bodies larger than this many UTF-8 bytes are not searched
DEFAULT_BODY_SEARCH_LIMIT = 10000


# ============================================================================
# TEXT PREDICATE
# ============================================================================

def decode_body(text: Optional[str], encoding: Optional[str]) -> str:
    """Decode base64 response content; anything else is returned as-is."""
    if not text:
        return ''
    if encoding == 'base64':
        try:
            return base64.b64decode(text, validate=True).decode('utf-8', errors='replace')
        except (binascii.Error, ValueError):
            return text
    return text


def body_within_limit(body: str, body_limit: int) -> bool:
    # a character is at least one byte, so long text can skip the encode
    if len(body) > body_limit:
        return False
    return len(body.encode('utf-8', errors='surrogatepass')) <= body_limit


def matches_text(entry: HarEntry, needle: str, body_limit: int = DEFAULT_BODY_SEARCH_LIMIT) -> bool:
    """
    Case-insensitive search across the searchable fields of an entry.

    Args:
        entry: HAR entry
        needle: Lower-cased search text
        body_limit: Bodies longer than this many UTF-8 bytes are skipped

    Returns:
        True on the first field that contains the needle
    """
    request = entry.request
    response = entry.response

    parsed = parse_url(request.url)
    if parsed is not None:
        if (needle in url_host(parsed).lower()
                or needle in parsed.path.lower()
                or needle in parsed.query.lower()):
            return True

    if needle in request.method.lower():
        return True

    for headers in (request.headers, response.headers):
        for header in headers:
            if needle in header.name.lower() or needle in header.value.lower():
                return True

    if needle in response.status_text.lower():
        return True

    if needle in response.content.mime_type.lower():
        return True

    if request.post_data is not None and request.post_data.text:
        body = request.post_data.text
        if body_within_limit(body, body_limit) and needle in body.lower():
            return True

    body = decode_body(response.content.text, response.content.encoding)
    if body and body_within_limit(body, body_limit) and needle in body.lower():
        return True

    for cookies in (request.cookies, response.cookies):
        for cookie in cookies:
            if needle in cookie.name.lower() or needle in cookie.value.lower():
                return True

    return False


def is_error_status(status: int) -> bool:
    """4xx/5xx responses and status 0 (aborted or blocked)"""
    return status >= 400 or status == 0


# ============================================================================
# ENTRY INDEX
# ============================================================================

class EntryIndex:
    """
    Per-dimension value -> positions lookup.

    The category dimension partitions all positions. Host and path are
    skipped for entries whose URL cannot be parsed.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._lists: Dict[str, Dict[Hashable, List[int]]] = {
            dimension: defaultdict(list) for dimension in DIMENSIONS
        }

    def add_entry(self, entry: HarEntry, position: int) -> None:
        """Record an entry under each of its dimension values."""
        category = classify_entry(entry)
        parsed = parse_url(entry.request.url)

        with self._lock:
            self._lists['method'][entry.request.method].append(position)
            self._lists['status'][entry.response.status].append(position)
            self._lists['mime_type'][entry.response.content.mime_type].append(position)
            if parsed is not None:
                self._lists['host'][url_host(parsed)].append(position)
                self._lists['path'][parsed.path].append(position)
            self._lists['category'][category.value].append(position)

    def get(self, dimension: str, value: Any) -> List[int]:
        """
        Positions recorded under a dimension value.

        Returns:
            A copy of the position list (empty when the value is unknown)

        Raises:
            KeyError: If dimension is not one of DIMENSIONS
        """
        lists = self._lists[dimension]
        with self._lock:
            positions = lists.get(value)
            return list(positions) if positions else []

    def get_by_method(self, method: str) -> List[int]:
        return self.get('method', method)

    def get_by_status(self, status: int) -> List[int]:
        return self.get('status', status)

    def get_by_mime_type(self, mime_type: str) -> List[int]:
        return self.get('mime_type', mime_type)

    def get_by_host(self, host: str) -> List[int]:
        return self.get('host', host)

    def get_by_path(self, path: str) -> List[int]:
        return self.get('path', path)

    def get_by_category(self, category: str) -> List[int]:
        return self.get('category', getattr(category, 'value', category))

    def values(self, dimension: str) -> List[Any]:
        """Distinct values seen for a dimension, in first-seen order."""
        lists = self._lists[dimension]
        with self._lock:
            return list(lists.keys())

    def counts(self, dimension: str) -> Dict[Any, int]:
        lists = self._lists[dimension]
        with self._lock:
            return {value: len(positions) for value, positions in lists.items()}

    def error_positions(self) -> List[int]:
        """Positions with status >= 400 or status 0, ascending. Recomputed per call."""
        with self._lock:
            result = [
                position
                for status, positions in self._lists['status'].items()
                if is_error_status(status)
                for position in positions
            ]
        result.sort()
        return result

    def filter_by_text(
        self,
        entries: Sequence[HarEntry],
        text: str,
        body_limit: int = DEFAULT_BODY_SEARCH_LIMIT,
    ) -> List[int]:
        """
        Positions of entries matching a search text.

        An empty text matches every entry.
        """
        if not text:
            return list(range(len(entries)))

        needle = text.lower()
        return [
            position
            for position, entry in enumerate(entries)
            if matches_text(entry, needle, body_limit)
        ]


# ============================================================================
# ENTRY STORE
# ============================================================================

class EntryStore:
    """
    Append-only entry list plus its index.

    Appending an entry and indexing it happen under one lock, so a reader
    never sees an indexed position without its entry or the reverse.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: List[HarEntry] = []
        self.index = EntryIndex()

    def append(self, entry: HarEntry) -> int:
        """Store an entry and return its position."""
        with self._lock:
            position = len(self._entries)
            self._entries.append(entry)
            self.index.add_entry(entry, position)
        return position

    def entries(self) -> List[HarEntry]:
        """Snapshot of the entries appended so far."""
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
