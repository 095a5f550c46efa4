"""Builders for HAR entries used across the tests."""

from har_explorer.models import HarEntry


def make_entry(
    url="https://example.com/index.html",
    method="GET",
    status=200,
    mime_type="text/html",
    time=100.0,
    started="2024-01-15T10:30:00.000Z",
    request_headers=None,
    response_headers=None,
    status_text="OK",
    body=None,
    encoding=None,
    post_body=None,
    request_cookies=None,
    resource_type=None,
    timings=None,
) -> dict:
    """Raw HAR entry dict with sensible defaults."""
    entry = {
        "startedDateTime": started,
        "time": time,
        "request": {
            "method": method,
            "url": url,
            "httpVersion": "HTTP/1.1",
            "headers": [{"name": k, "value": v} for k, v in (request_headers or {}).items()],
            "cookies": [{"name": k, "value": v} for k, v in (request_cookies or {}).items()],
        },
        "response": {
            "status": status,
            "statusText": status_text,
            "httpVersion": "HTTP/1.1",
            "headers": [{"name": k, "value": v} for k, v in (response_headers or {}).items()],
            "cookies": [],
            "content": {"size": 0, "mimeType": mime_type},
        },
        "timings": timings or {"blocked": 0, "dns": 0, "connect": 0, "send": 1, "wait": 50, "receive": 10, "ssl": 0},
    }
    if body is not None:
        entry["response"]["content"]["text"] = body
    if encoding is not None:
        entry["response"]["content"]["encoding"] = encoding
    if post_body is not None:
        entry["request"]["postData"] = {"mimeType": "application/json", "text": post_body}
    if resource_type is not None:
        entry["_resourceType"] = resource_type
    return entry


def entry(**kwargs) -> HarEntry:
    return HarEntry.model_validate(make_entry(**kwargs))


def har_document(entries, version="1.2", **extra_log) -> dict:
    log = {"version": version, "creator": {"name": "test", "version": "1.0"}}
    log.update(extra_log)
    log["entries"] = list(entries)
    return {"log": log}
