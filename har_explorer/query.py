"""
Filter/query engine.

Turns a FilterState into the ordered list of visible positions by
intersecting index lookups. Results are recomputed on every call.
"""

from typing import List, Sequence

from .classifier import classify_entry
from .index import DEFAULT_BODY_SEARCH_LIMIT, EntryIndex, is_error_status, matches_text
from .models import ALL_CATEGORIES, FilterState, HarEntry


def intersect_positions(probe: Sequence[int], current: Sequence[int]) -> List[int]:
    """
    Positions of probe that are also in current.

    The result follows the probe's order and keeps the probe's duplicates:
    intersect_positions([2, 2, 3, 3, 4], [1, 2, 3]) == [2, 2, 3, 3].
    """
    if not probe or not current:
        return []
    members = set(current)
    return [position for position in probe if position in members]


def sort_by_duration(positions: List[int], entries: Sequence[HarEntry]) -> List[int]:
    """Slowest first; equal durations keep their relative order."""
    return sorted(positions, key=lambda position: entries[position].time, reverse=True)


def evaluate(
    state: FilterState,
    entries: Sequence[HarEntry],
    index: EntryIndex,
    body_limit: int = DEFAULT_BODY_SEARCH_LIMIT,
) -> List[int]:
    """
    Compute the visible positions for a filter state using the index.

    Args:
        state: Active filters
        entries: Entry snapshot; positions beyond it are ignored
        index: Index built over the same store
        body_limit: Largest body searched by the text filter

    Returns:
        Ordered list of positions
    """
    count = len(entries)

    if state.category_filter == ALL_CATEGORIES:
        result = list(range(count))
    else:
        result = [p for p in index.get_by_category(state.category_filter) if p < count]

    if state.errors_only:
        errors = [p for p in index.error_positions() if p < count]
        result = intersect_positions(errors, result)

    if state.text_filter:
        matches = index.filter_by_text(entries, state.text_filter, body_limit)
        result = intersect_positions(matches, result)

    if state.sort_by_duration:
        result = sort_by_duration(result, entries)

    return result


def evaluate_naive(
    state: FilterState,
    entries: Sequence[HarEntry],
    body_limit: int = DEFAULT_BODY_SEARCH_LIMIT,
) -> List[int]:
    """
    Reference implementation: a single linear pass over every entry.

    Selects the same set of positions as evaluate().
    """
    needle = state.text_filter.lower()
    result = []

    for position, entry in enumerate(entries):
        if state.errors_only and not is_error_status(entry.response.status):
            continue

        if needle and not matches_text(entry, needle, body_limit):
            continue

        if state.category_filter != ALL_CATEGORIES:
            if classify_entry(entry).value != state.category_filter:
                continue

        result.append(position)

    if state.sort_by_duration:
        result = sort_by_duration(result, entries)

    return result
