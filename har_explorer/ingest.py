"""
Streaming HAR ingestion.

Entries are decoded one at a time from the log.entries array, so the
document is never held in memory as a whole. Progress is published as
typed events on a queue.
"""

import logging
import queue
import threading
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Union

import ijson
from ijson.common import ObjectBuilder

from .index import EntryStore
from .models import (
    EntriesAdded,
    HarEntry,
    LoadCancelled,
    LoadComplete,
    LoadEvent,
    LoadFailed,
    LoadProgress,
)

logger = logging.getLogger(__name__)


DEFAULT_BATCH_SIZE = 100
DEFAULT_PROGRESS_INTERVAL = 50
DEFAULT_HAR_VERSION = "1.2"

ENTRY_PREFIX = 'log.entries.item'

# Containers that must have a specific JSON type, with the events allowed at
# their own prefix
STRUCTURE = {
    '': ('object', {'start_map', 'map_key', 'end_map'}),
    'log': ('object', {'start_map', 'map_key', 'end_map'}),
    'log.entries': ('array', {'start_array', 'end_array'}),
}


class HarFormatError(ValueError):
    """The document is valid JSON but not shaped like a HAR file"""


def iter_har_entries(source: BinaryIO, on_version=None) -> Iterator[HarEntry]:
    """
    Decode log.entries one element at a time.

    Keys other than log and log.entries are parsed and discarded.

    Args:
        source: Binary file object positioned at the start of the document
        on_version: Optional callback receiving log.version when it is seen

    Yields:
        HarEntry for each element of log.entries, in file order

    Raises:
        HarFormatError: If the top level, log or log.entries has the wrong type
        ijson.JSONError: On malformed JSON
        pydantic.ValidationError: If an element is not a valid entry
    """
    builder = None

    for prefix, event, value in ijson.parse(source, use_float=True):
        if builder is not None:
            builder.event(event, value)
            if prefix == ENTRY_PREFIX and event in ('end_map', 'end_array'):
                yield HarEntry.model_validate(builder.value)
                builder = None
            continue

        if prefix == ENTRY_PREFIX:
            if event in ('start_map', 'start_array'):
                builder = ObjectBuilder()
                builder.event(event, value)
            else:
                yield HarEntry.model_validate(value)
            continue

        shape = STRUCTURE.get(prefix)
        if shape is not None and event not in shape[1]:
            location = prefix or 'top level'
            raise HarFormatError(f"expected a JSON {shape[0]} at {location}, got {event}")

        if prefix == 'log.version' and on_version is not None:
            on_version(value)


class StreamingLoader:
    """
    Loads one HAR file into an EntryStore.

    Runs inline with run() or on a background thread with start(). Exactly
    one terminal event (LoadComplete, LoadFailed or LoadCancelled) is
    published per load, after any pending EntriesAdded batch.
    """

    def __init__(
        self,
        store: Optional[EntryStore] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        if progress_interval < 1:
            raise ValueError(f"progress_interval must be at least 1, got {progress_interval}")

        self.store = store if store is not None else EntryStore()
        self.batch_size = batch_size
        self.progress_interval = progress_interval
        self.har_version = DEFAULT_HAR_VERSION

        self._events: "queue.Queue[LoadEvent]" = queue.Queue()
        self._cancelled = threading.Event()
        self._finished = threading.Event()
        self._started = False
        self._terminal: Optional[LoadEvent] = None
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(cls, config, store: Optional[EntryStore] = None) -> "StreamingLoader":
        return cls(store=store, batch_size=config.batch_size, progress_interval=config.progress_interval)

    # Public API

    def start(self, har_path: Union[str, Path]) -> threading.Thread:
        """Run the load on a daemon thread and return immediately."""
        self._claim()
        self._thread = threading.Thread(
            target=self._load, args=(Path(har_path),), name="har-loader", daemon=True
        )
        self._thread.start()
        return self._thread

    def run(self, har_path: Union[str, Path]) -> LoadEvent:
        """Run the load in the calling thread and return the terminal event."""
        self._claim()
        return self._load(Path(har_path))

    def cancel(self) -> None:
        """Ask the load to stop before the next entry."""
        self._cancelled.set()

    def events(self, timeout: Optional[float] = None) -> Iterator[LoadEvent]:
        """
        Yield published events up to and including the terminal one.

        Raises:
            queue.Empty: If no event arrives within timeout seconds
        """
        while True:
            event = self._events.get(timeout=timeout)
            yield event
            if event.terminal:
                return

    def wait(self, timeout: Optional[float] = None) -> Optional[LoadEvent]:
        """Block until the load ends; returns the terminal event or None on timeout."""
        if not self._finished.wait(timeout):
            return None
        return self._terminal

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    # Internals

    def _claim(self) -> None:
        if self._started:
            raise RuntimeError("StreamingLoader instances load a single file; create a new one")
        self._started = True

    def _publish(self, event: LoadEvent) -> None:
        self._events.put(event)

    def _flush(self, pending: List[int]) -> None:
        if pending:
            logger.debug(f"Publishing batch of {len(pending)} entries starting at {pending[0]}")
            self._publish(EntriesAdded(first_position=pending[0], positions=list(pending)))
            pending.clear()

    def _finish(self, event: LoadEvent) -> LoadEvent:
        self._terminal = event
        self._publish(event)
        self._finished.set()
        return event

    def _set_version(self, value) -> None:
        if isinstance(value, str) and value:
            self.har_version = value

    def _load(self, har_path: Path) -> LoadEvent:
        logger.info(f"Loading HAR file: {har_path}")
        pending: List[int] = []
        count = 0

        try:
            with open(har_path, 'rb') as f:
                for entry in iter_har_entries(f, on_version=self._set_version):
                    if self._cancelled.is_set():
                        self._flush(pending)
                        logger.warning(f"Load of {har_path} cancelled after {count} entries")
                        return self._finish(LoadCancelled(count=count))

                    pending.append(self.store.append(entry))
                    count += 1

                    if len(pending) >= self.batch_size:
                        self._flush(pending)
                    if count % self.progress_interval == 0:
                        self._publish(LoadProgress(count=count))

        except (OSError, ValueError, ijson.JSONError) as e:
            self._flush(pending)
            logger.error(f"Failed to load {har_path} after {count} entries: {e}")
            return self._finish(LoadFailed(error=str(e), count=count))

        self._flush(pending)
        self._publish(LoadProgress(count=count))
        logger.info(f"Loaded {count} entries from {har_path}")
        return self._finish(LoadComplete(count=count))


def load_har_file(har_path: Union[str, Path], store: Optional[EntryStore] = None) -> EntryStore:
    """
    Load a whole HAR file synchronously.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the load fails; entries read before the failure stay
            in the store passed in
    """
    if not Path(har_path).exists():
        raise FileNotFoundError(f"HAR file not found: {har_path}")

    loader = StreamingLoader(store=store)
    result = loader.run(har_path)
    if isinstance(result, LoadFailed):
        raise ValueError(f"Invalid HAR file {har_path}: {result.error}")
    return loader.store
