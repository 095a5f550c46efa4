"""
Export of filtered entries and per-entry reports (curl command, Markdown
support summary).
"""

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .classifier import parse_url, url_host
from .index import decode_body
from .models import ALL_CATEGORIES, FilterState, HarEntry, HarHeader
from .timestamps import try_parse_har_datetime

logger = logging.getLogger(__name__)


def build_har_document(
    entries: Sequence[HarEntry],
    positions: Sequence[int],
    version: str = "1.2",
) -> dict:
    """
    HAR document holding the entries at the given positions, in that order.

    Positions outside the entry list are skipped.
    """
    selected = [entries[p].to_har() for p in positions if 0 <= p < len(entries)]
    return {'log': {'version': version, 'entries': selected}}


def save_filtered_har(
    output_path: Union[str, Path],
    entries: Sequence[HarEntry],
    positions: Sequence[int],
    version: str = "1.2",
) -> int:
    """
    Write the filtered entries as a HAR file.

    Returns:
        Number of entries written
    """
    document = build_har_document(entries, positions, version)
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(document, f, indent=2, ensure_ascii=False)

    written = len(document['log']['entries'])
    logger.info(f"Saved {written}/{len(entries)} entries to {output_path}")
    return written


def generate_filtered_filename(
    original_filename: str,
    state: FilterState,
    now: Optional[datetime] = None,
) -> str:
    """
    Name an export after the filters that produced it.

    Examples:
        capture.har, category=fetch, errors only ->
            capture_filtered_fetch_errors_only_20240101_120000.har
        capture.har, no filters -> capture_all_entries_20240101_120000.har
    """
    timestamp = (now or datetime.now()).strftime('%Y%m%d_%H%M%S')
    base_name = Path(original_filename).name
    if '.' in base_name:
        base_name = base_name[:base_name.rindex('.')]

    parts = []
    if state.category_filter != ALL_CATEGORIES:
        parts.append(state.category_filter)
    if state.text_filter:
        cleaned = re.sub(r'[^\w\-.]', '_', state.text_filter)[:20]
        parts.append(f"search_{cleaned}")
    if state.errors_only:
        parts.append('errors_only')
    if state.sort_by_duration:
        parts.append('by_slowest')

    if parts:
        filename = f"{base_name}_filtered_{'_'.join(parts)}_{timestamp}.har"
    else:
        filename = f"{base_name}_all_entries_{timestamp}.har"

    return re.sub(r'_+', '_', filename)


def generate_curl_command(entry: HarEntry) -> str:
    """Reproduce a request as a curl command line."""
    request = entry.request
    parts = [f"curl -X {request.method} '{request.url}'"]

    for header in request.headers:
        if header.name.lower() != 'host':
            parts.append(f"-H '{header.name}: {header.value}'")

    if request.post_data is not None and request.post_data.text:
        body = request.post_data.text.replace("'", "'\\''")
        parts.append(f"-d '{body}'")

    return ' '.join(parts)


# ============================================================================
# MARKDOWN SUPPORT SUMMARY
# ============================================================================

# Header name fragments worth showing; everything else is noise in a report
KEY_REQUEST_HEADERS = ['authorization', 'content-type', 'accept', 'user-agent', 'x-', 'cookie', 'auth']
KEY_RESPONSE_HEADERS = ['content-type', 'content-length', 'cache-control', 'set-cookie', 'location', 'server', 'x-']

REQUEST_BODY_PREVIEW = 500
RESPONSE_BODY_PREVIEW = 800
ERROR_BODY_PREVIEW = 1500

SLOW_MS = 5000
SLUGGISH_MS = 2000
BREAKDOWN_MS = 1000

TROUBLESHOOTING = {
    401: ["Check authentication headers/tokens", "Verify API keys are valid", "Check token expiration"],
    403: ["Check user permissions", "Verify resource access rights", "Check rate limiting"],
    404: ["Verify URL path is correct", "Check if resource exists", "Validate route configuration"],
    429: ["Rate limiting active", "Check retry-after header", "Implement backoff strategy"],
}
SERVER_ERROR_HINTS = ["Server-side issue", "Check server logs", "Verify service health"]


def status_icon(status: int) -> str:
    if status >= 500:
        return "🔥"
    if status >= 400:
        return "⚠️"
    if status >= 300:
        return "↩️"
    return "✅"


def code_language(mime_type: str) -> str:
    """Fence language for a body of the given MIME type."""
    mime_type = mime_type.lower()
    for language in ('json', 'xml', 'html', 'css'):
        if language in mime_type:
            return language
    return 'text'


def redact(value: str) -> str:
    if len(value) > 10:
        return f"{value[:10]}...{value[-4:]} (redacted)"
    return value


def _format_started(started: str) -> str:
    moment = try_parse_har_datetime(started)
    if moment is None:
        return started or "unknown"
    hour = moment.hour % 12 or 12
    meridiem = 'AM' if moment.hour < 12 else 'PM'
    return (
        f"{moment:%A, %B} {moment.day}, {moment.year} at {hour}:{moment:%M:%S} {meridiem} "
        f"({moment:%Y-%m-%d %H:%M:%S} UTC)"
    )


def _key_headers(headers: List[HarHeader], fragments: List[str]) -> List[HarHeader]:
    return [h for h in headers if any(fragment in h.name.lower() for fragment in fragments)]


def _body_block(lines: List[str], text: str, language: str, limit: int) -> None:
    lines.append(f"```{language}")
    if len(text) > limit:
        lines.append(text[:limit])
        lines.append(f"... (showing first {limit} chars of {len(text)} total)")
    else:
        lines.append(text)
    lines.append("```")
    lines.append("")


def generate_markdown_summary(entry: HarEntry) -> str:
    """
    Render one entry as a Markdown report for support investigations.

    Sections appear only when they have content: key request headers,
    request body, response headers and body, timing breakdown (slow or
    failed requests) and troubleshooting hints (failed requests).

    Args:
        entry: HAR entry to describe

    Returns:
        Markdown text
    """
    request = entry.request
    response = entry.response
    status = response.status

    parsed = parse_url(request.url)
    host = url_host(parsed) if parsed is not None else ''
    path = parsed.path if parsed is not None else ''

    lines = []
    lines.append(f"# {status_icon(status)} {request.method} {status} - {host} Request Issue")
    lines.append("")

    # Critical info
    lines.append("## 🚨 Critical Info")
    lines.append("")
    lines.append(f"- **Date/Time:** {_format_started(entry.started_date_time)}")
    lines.append(f"- **Status:** {status} {response.status_text}")
    response_time = f"- **Response Time:** {entry.time:.0f}ms"
    if entry.time > SLOW_MS:
        response_time += " ⚠️ SLOW"
    elif entry.time > SLUGGISH_MS:
        response_time += " 🐌 Sluggish"
    lines.append(response_time)
    lines.append(f"- **Method:** {request.method}")
    lines.append(f"- **Host:** {host}")
    lines.append(f"- **Path:** {path}")
    lines.append("")

    lines.append("## 🔗 Request Details")
    lines.append("")
    lines.append(f"**Full URL:** `{request.url}`")
    lines.append("")

    request_headers = _key_headers(request.headers, KEY_REQUEST_HEADERS)
    if request_headers:
        lines.append("## 📋 Key Request Headers")
        lines.append("")
        for header in request_headers:
            value = redact(header.value) if 'auth' in header.name.lower() else header.value
            lines.append(f"- **{header.name}:** `{value}`")
        lines.append("")

    if request.post_data is not None and request.post_data.text:
        lines.append("## 📤 Request Body")
        lines.append("")
        _body_block(lines, request.post_data.text, code_language(request.post_data.mime_type), REQUEST_BODY_PREVIEW)

    # Response
    lines.append("## 📥 Response Info")
    lines.append("")

    response_headers = _key_headers(response.headers, KEY_RESPONSE_HEADERS)
    if response_headers:
        lines.append("**Key Headers:**")
        for header in response_headers:
            lines.append(f"- **{header.name}:** `{header.value}`")
        lines.append("")

    if response.content.text:
        body = decode_body(response.content.text, response.content.encoding)
        if status >= 400 or 'error' in body.lower():
            lines.append("**Error Response:**")
        else:
            lines.append("**Response Body:**")
        limit = ERROR_BODY_PREVIEW if status >= 400 else RESPONSE_BODY_PREVIEW
        _body_block(lines, body, code_language(response.content.mime_type), limit)

    if entry.time > BREAKDOWN_MS or status >= 400:
        timings = entry.timings
        lines.append("## ⏱️ Performance Breakdown")
        lines.append("")
        lines.append(f"- **DNS:** {timings.dns:.0f}ms")
        lines.append(f"- **Connect:** {timings.connect:.0f}ms")
        if timings.ssl > 0:
            lines.append(f"- **SSL:** {timings.ssl:.0f}ms")
        lines.append(f"- **Send:** {timings.send:.0f}ms")
        lines.append(f"- **Wait (TTFB):** {timings.wait:.0f}ms")
        lines.append(f"- **Receive:** {timings.receive:.0f}ms")
        lines.append(f"- **Total:** {entry.time:.0f}ms")
        lines.append("")

    if status >= 400:
        hints = SERVER_ERROR_HINTS if status >= 500 else TROUBLESHOOTING.get(status, [])
        lines.append("## 🔧 Quick Troubleshooting")
        lines.append("")
        for hint in hints:
            lines.append(f"- {hint}")
        lines.append("")

    lines.append("## 🔁 Reproduce")
    lines.append("")
    lines.append("```bash")
    lines.append(generate_curl_command(entry))
    lines.append("```")
    lines.append("")
    lines.append("---")
    lines.append("*Generated by HAR Explorer for support investigation*")

    return "\n".join(lines)
