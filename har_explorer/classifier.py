"""
Request category classification.

Each entry gets exactly one category. Rules are evaluated in a fixed order
and the first rule that produces a category wins, so the order of RULES is
part of the behavior.
"""

from typing import Callable, List, Optional, Tuple
from urllib.parse import SplitResult, urlsplit

from .models import Category, HarEntry, HarHeader


# ============================================================================
# CLASSIFICATION TABLES
# ============================================================================

# Browser resource type hint (_resourceType) -> category
RESOURCE_TYPES = {
    'image': Category.IMG,
    'stylesheet': Category.CSS,
    'script': Category.JS,
    'document': Category.DOC,
    'media': Category.MEDIA,
    'manifest': Category.MANIFEST,
    'websocket': Category.WS,
    'fetch': Category.FETCH,
    'xhr': Category.FETCH,
    'wasm': Category.WASM,
}

# Response Content-Type substrings, checked in order
CONTENT_TYPES: List[Tuple[Tuple[str, ...], Category]] = [
    (('text/html',), Category.DOC),
    (('text/css',), Category.CSS),
    (('javascript', 'ecmascript'), Category.JS),
    (('image/',), Category.IMG),
    (('audio/', 'video/'), Category.MEDIA),
    (('application/manifest', 'text/cache-manifest'), Category.MANIFEST),
    (('application/wasm',), Category.WASM),
    (('application/json', 'application/xml', 'text/xml'), Category.FETCH),
]

# URL path suffixes, checked in order
PATH_EXTENSIONS: List[Tuple[Tuple[str, ...], Category]] = [
    (('.html', '.htm'), Category.DOC),
    (('.css',), Category.CSS),
    (('.js', '.mjs'), Category.JS),
    (('.png', '.jpg', '.jpeg', '.gif', '.svg', '.webp', '.ico'), Category.IMG),
    (('.mp4', '.webm', '.ogg', '.mp3', '.wav', '.flac'), Category.MEDIA),
    (('.wasm',), Category.WASM),
    (('.manifest', '.webmanifest'), Category.MANIFEST),
]

API_PATH_MARKERS = ['/api/', '/rest/', '/graphql']


# ============================================================================
# URL AND HEADER HELPERS
# ============================================================================

def parse_url(url: str) -> Optional[SplitResult]:
    """Split a URL, or None if it cannot be parsed."""
    try:
        return urlsplit(url)
    except ValueError:
        return None


def url_host(parsed: SplitResult) -> str:
    """host[:port] without any userinfo"""
    return parsed.netloc.rpartition('@')[2]


def has_header(headers: List[HarHeader], name: str) -> bool:
    name = name.lower()
    return any(header.name.lower() == name for header in headers)


# ============================================================================
# CORS FAILURE HEURISTIC
# ============================================================================

def is_cors_error(entry: HarEntry) -> bool:
    """
    Check if a blocked request (status 0) most likely failed a CORS check.

    Args:
        entry: HAR entry

    Returns:
        True if the request looks like a CORS failure
    """
    if entry.response.status != 0:
        return False

    request = entry.request
    method = request.method.upper()

    # Failed preflight. OPTIONS without the preflight header is never CORS.
    if method == 'OPTIONS':
        return has_header(request.headers, 'access-control-request-method')

    for header in request.headers:
        name = header.name.lower()
        if name == 'origin':
            return True
        if name == 'sec-fetch-mode' and header.value.lower() == 'cors':
            return True

    # Cross-origin GET carrying a JSON Content-Type forces a preflight
    if method == 'GET':
        parsed = parse_url(request.url)
        if parsed is None:
            return False
        request_host = url_host(parsed)

        cross_origin = False
        json_content_type = False
        for header in request.headers:
            name = header.name.lower()
            if name == 'referer':
                referer = parse_url(header.value)
                if referer is not None:
                    referer_host = url_host(referer)
                    if request_host and referer_host and request_host != referer_host:
                        cross_origin = True
            elif name == 'content-type' and 'application/json' in header.value.lower():
                json_content_type = True

        if cross_origin and json_content_type:
            return True

    return False


# ============================================================================
# CLASSIFICATION RULES
# ============================================================================

# A rule sees the entry and its split URL and either names a category or passes.
# Rules after the first are only reached with a parsed URL.
Rule = Callable[[HarEntry, Optional[SplitResult]], Optional[Category]]


def cors_rule(entry: HarEntry, url: Optional[SplitResult]) -> Optional[Category]:
    return Category.CORS if is_cors_error(entry) else None


def websocket_rule(entry: HarEntry, url: SplitResult) -> Optional[Category]:
    return Category.WS if url.scheme.lower() in ('ws', 'wss') else None


def resource_type_rule(entry: HarEntry, url: SplitResult) -> Optional[Category]:
    if not entry.resource_type:
        return None
    return RESOURCE_TYPES.get(entry.resource_type.lower())


def content_type_rule(entry: HarEntry, url: SplitResult) -> Optional[Category]:
    for header in entry.response.headers:
        if header.name.lower() != 'content-type':
            continue
        content_type = header.value.lower()
        for markers, category in CONTENT_TYPES:
            if any(marker in content_type for marker in markers):
                return category
    return None


def extension_rule(entry: HarEntry, url: SplitResult) -> Optional[Category]:
    path = url.path.lower()
    for suffixes, category in PATH_EXTENSIONS:
        if path.endswith(suffixes):
            return category
    return None


def xhr_header_rule(entry: HarEntry, url: SplitResult) -> Optional[Category]:
    for header in entry.request.headers:
        name = header.name.lower()
        value = header.value.lower()
        if name == 'x-requested-with' and value == 'xmlhttprequest':
            return Category.FETCH
        if name == 'accept' and ('application/json' in value or 'application/xml' in value):
            return Category.FETCH
    return None


def path_rule(entry: HarEntry, url: SplitResult) -> Optional[Category]:
    path = url.path.lower()
    if path in ('', '/'):
        return Category.DOC
    if any(marker in path for marker in API_PATH_MARKERS):
        return Category.FETCH
    return None


RULES: List[Tuple[str, Rule]] = [
    ('cors', cors_rule),
    ('websocket', websocket_rule),
    ('resource_type', resource_type_rule),
    ('content_type', content_type_rule),
    ('extension', extension_rule),
    ('xhr_headers', xhr_header_rule),
    ('path', path_rule),
]


def classify_entry(entry: HarEntry) -> Category:
    """
    Determine the category of a HAR entry.

    Args:
        entry: HAR entry

    Returns:
        Category of the first matching rule, or Category.OTHER
    """
    url = parse_url(entry.request.url)
    for _name, rule in RULES:
        category = rule(entry, url)
        if category is not None:
            return category
        if url is None:
            # only the CORS rule can judge an entry whose URL does not parse
            return Category.OTHER
    return Category.OTHER
