"""Tests for har_explorer/ingest.py"""

import io
import json

import pytest

from har_explorer.index import EntryStore
from har_explorer.ingest import HarFormatError, StreamingLoader, iter_har_entries, load_har_file
from har_explorer.models import (
    EntriesAdded,
    LoadCancelled,
    LoadComplete,
    LoadFailed,
    LoadProgress,
)
from tests.helpers import har_document, make_entry


def entries(count):
    return [make_entry(url=f"https://example.com/item/{i}", time=float(i + 1)) for i in range(count)]


def drain(loader):
    return list(loader.events(timeout=5))


class CancellingStore(EntryStore):
    """Cancels its loader once a given number of entries is stored."""

    def __init__(self, after):
        super().__init__()
        self.after = after
        self.loader = None

    def append(self, entry):
        position = super().append(entry)
        if position + 1 == self.after:
            self.loader.cancel()
        return position


class TestIterHarEntries:
    def test_decodes_in_order(self):
        source = io.BytesIO(json.dumps(har_document(entries(3))).encode())
        urls = [item.request.url for item in iter_har_entries(source)]
        assert urls == [f"https://example.com/item/{i}" for i in range(3)]

    def test_unknown_fields_are_skipped(self):
        document = {
            "comment": {"nested": [1, 2, {"entries": []}]},
            "log": {
                "pages": [{"id": "page_1", "entries": ["not", "these"]}],
                "entries": [dict(make_entry(), _priority="High", _custom={"a": [1, 2]})],
                "browser": {"name": "Firefox"},
            },
            "trailer": True,
        }
        items = list(iter_har_entries(io.BytesIO(json.dumps(document).encode())))
        assert len(items) == 1
        assert items[0].model_extra["_priority"] == "High"

    def test_reports_version(self):
        seen = []
        source = io.BytesIO(json.dumps(har_document([], version="1.3")).encode())
        list(iter_har_entries(source, on_version=seen.append))
        assert seen == ["1.3"]

    @pytest.mark.parametrize("document", [
        [],
        {"log": []},
        {"log": {"entries": {}}},
        "just a string",
    ])
    def test_wrong_shape(self, document):
        with pytest.raises(HarFormatError):
            list(iter_har_entries(io.BytesIO(json.dumps(document).encode())))

    def test_missing_entries_yields_nothing(self):
        assert list(iter_har_entries(io.BytesIO(b'{"log": {"version": "1.2"}}'))) == []


class TestStreamingLoader:
    def test_success(self, write_har):
        path = write_har(har_document(entries(7)))
        loader = StreamingLoader(batch_size=3, progress_interval=5)
        loader.start(path)
        events = drain(loader)

        batches = [e for e in events if isinstance(e, EntriesAdded)]
        assert [b.positions for b in batches] == [[0, 1, 2], [3, 4, 5], [6]]
        assert [b.first_position for b in batches] == [0, 3, 6]
        assert [e.count for e in events if isinstance(e, LoadProgress)] == [5, 7]
        assert events[-1] == LoadComplete(count=7)
        assert len(loader.store) == 7
        assert loader.wait(timeout=1) == LoadComplete(count=7)
        assert loader.finished

    def test_terminal_event_is_last_and_unique(self, write_har):
        path = write_har(har_document(entries(250)))
        loader = StreamingLoader()
        loader.start(path)
        events = drain(loader)
        assert sum(1 for e in events if e.terminal) == 1
        assert events[-1].terminal
        added = [p for e in events if isinstance(e, EntriesAdded) for p in e.positions]
        assert added == list(range(250))

    def test_every_position_in_one_category(self, write_har):
        path = write_har(har_document(entries(20)))
        loader = StreamingLoader()
        result = loader.run(path)
        assert isinstance(result, LoadComplete)
        index = loader.store.index
        buckets = [p for category in index.values("category") for p in index.get_by_category(category)]
        assert sorted(buckets) == list(range(result.count))

    def test_missing_file(self, tmp_path):
        loader = StreamingLoader()
        result = loader.run(tmp_path / "absent.har")
        assert isinstance(result, LoadFailed)
        assert result.count == 0
        assert len(loader.store) == 0

    def test_truncated_file_keeps_prior_entries(self, write_har):
        text = json.dumps(har_document(entries(5)))
        cut = text.index('"https://example.com/item/3"')
        path = write_har(text[:cut])
        loader = StreamingLoader(batch_size=2)
        loader.start(path)
        events = drain(loader)

        failures = [e for e in events if isinstance(e, LoadFailed)]
        assert len(failures) == 1
        assert events[-1] is failures[0]
        assert failures[0].count == 3
        assert len(loader.store) == 3
        added = [p for e in events if isinstance(e, EntriesAdded) for p in e.positions]
        assert added == [0, 1, 2]
        assert loader.store.index.get_by_path("/item/2") == [2]

    def test_invalid_entry_aborts(self, write_har):
        document = har_document(entries(2) + [{"time": "slow"}] + entries(1))
        loader = StreamingLoader()
        result = loader.run(write_har(document))
        assert isinstance(result, LoadFailed)
        assert result.count == 2

    def test_wrong_shape_fails(self, write_har):
        result = StreamingLoader().run(write_har([1, 2, 3]))
        assert isinstance(result, LoadFailed)
        assert "top level" in result.error

    def test_cancel(self, write_har):
        path = write_har(har_document(entries(10)))
        loader = StreamingLoader()
        loader.cancel()
        result = loader.run(path)
        assert result == LoadCancelled(count=0)
        assert len(loader.store) == 0

    def test_cancel_flushes_partial_batch(self, write_har):
        path = write_har(har_document(entries(300)))
        store = CancellingStore(after=150)
        loader = StreamingLoader(store=store, batch_size=100)
        store.loader = loader

        result = loader.run(path)
        events = drain(loader)

        assert result == LoadCancelled(count=150)
        assert events[-1] == result
        batches = [e.positions for e in events if isinstance(e, EntriesAdded)]
        assert batches == [list(range(100)), list(range(100, 150))]
        assert len(store) == 150

    def test_cancel_during_threaded_load(self, write_har):
        path = write_har(har_document(entries(20000)))
        loader = StreamingLoader(batch_size=100)
        loader.start(path)

        events = []
        for event in loader.events(timeout=30):
            events.append(event)
            if isinstance(event, EntriesAdded):
                loader.cancel()

        terminal = events[-1]
        assert isinstance(terminal, LoadCancelled)
        assert terminal.count < 20000
        added = [p for e in events if isinstance(e, EntriesAdded) for p in e.positions]
        assert added == list(range(terminal.count))
        assert len(loader.store) == terminal.count
        assert loader.wait(timeout=5) == terminal

    def test_null_fields_decode_to_defaults(self, write_har):
        tolerant = make_entry(url="https://example.com/null", response_headers={"X-Trace": "abc"})
        tolerant["response"]["statusText"] = None
        tolerant["response"]["headers"][0]["value"] = None
        tolerant["response"]["content"]["mimeType"] = None
        tolerant["request"]["httpVersion"] = None
        tolerant["request"]["cookies"] = None
        tolerant["time"] = None
        document = har_document(entries(1) + [tolerant] + entries(1))

        loader = StreamingLoader()
        result = loader.run(write_har(document))

        assert result == LoadComplete(count=3)
        decoded = loader.store.entries()[1]
        assert decoded.response.status_text == ""
        assert decoded.response.headers[0].value == ""
        assert decoded.response.content.mime_type == ""
        assert decoded.request.http_version == ""
        assert decoded.request.cookies == []
        assert decoded.time == 0
        assert loader.store.index.get_by_mime_type("") == [1]

    def test_captures_har_version(self, write_har):
        loader = StreamingLoader()
        loader.run(write_har(har_document(entries(1), version="1.3")))
        assert loader.har_version == "1.3"

    def test_single_use(self, write_har):
        path = write_har(har_document(entries(1)))
        loader = StreamingLoader()
        loader.run(path)
        with pytest.raises(RuntimeError):
            loader.run(path)

    @pytest.mark.parametrize("kwargs", [{"batch_size": 0}, {"progress_interval": 0}])
    def test_invalid_settings(self, kwargs):
        with pytest.raises(ValueError):
            StreamingLoader(**kwargs)


class TestLoadHarFile:
    def test_loads_store(self, write_har):
        store = load_har_file(write_har(har_document(entries(4))))
        assert len(store) == 4

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_har_file(tmp_path / "nope.har")

    def test_invalid(self, write_har):
        with pytest.raises(ValueError):
            load_har_file(write_har("{not json"))
