import json

import pytest

from har_explorer.index import EntryStore
from tests.helpers import entry


@pytest.fixture
def write_har(tmp_path):
    """Write a HAR document (dict or raw text) and return its path."""
    def _write(document, name="capture.har"):
        path = tmp_path / name
        if isinstance(document, str):
            path.write_text(document, encoding="utf-8")
        else:
            path.write_text(json.dumps(document), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def scenario_entries():
    """Five entries: 0, 1 and 3 on api.example.com, 2 is a JPEG, 3 returns 500."""
    return [
        entry(url="https://api.example.com/v1/users", mime_type="application/json", time=120.0),
        entry(url="https://api.example.com/v1/orders", mime_type="application/json", time=80.0),
        entry(url="https://cdn.example.net/photo.jpg", mime_type="image/jpeg", time=40.0),
        entry(url="https://api.example.com/v1/checkout", status=500, status_text="Internal Server Error",
              mime_type="application/json", time=300.0),
        entry(url="https://www.example.org/", mime_type="text/html", time=60.0),
    ]


@pytest.fixture
def scenario_store(scenario_entries):
    store = EntryStore()
    for item in scenario_entries:
        store.append(item)
    return store
