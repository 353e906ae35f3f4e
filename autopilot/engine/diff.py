"""Identity-keyed diff between a run's items and the prior completed run's.

Identity comes from a caller-supplied key extractor. Keys are trimmed and
lower-cased; items without a usable key take no part in the diff, so they
are never reported as added or removed.
"""

from collections.abc import Callable, Iterable
from typing import Any

from autopilot.models.automation_run import AutomationRun
from autopilot.schemas.run import DiffResult

KeyFn = Callable[[Any], Any]


def normalize_key(raw: Any) -> str | None:
    """Trim and lower-case a key; None when nothing usable remains."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int | float):
        raw = str(raw)
    if not isinstance(raw, str):
        return None
    key = raw.strip().lower()
    return key or None


def _safe_key(item: Any, key_fn: KeyFn) -> str | None:
    try:
        return normalize_key(key_fn(item))
    except (AttributeError, KeyError, TypeError, IndexError, ValueError):
        return None


def _index_by_key(items: Iterable[Any], key_fn: KeyFn) -> dict[str, Any]:
    """Map normalized key -> first item carrying it, keyless items dropped."""
    indexed: dict[str, Any] = {}
    for item in items:
        key = _safe_key(item, key_fn)
        if key is not None and key not in indexed:
            indexed[key] = item
    return indexed


def diff_items(
    current_items: Iterable[Any],
    prior_items: Iterable[Any] | None,
    key_fn: KeyFn,
) -> DiffResult:
    """
    Compare current items against prior items by normalized identity key.

    Runs in O(n + m) using dict/set membership. Items sharing a key within
    one list count once (first occurrence).

    Args:
        current_items: Items from the run being finalized
        prior_items: Items from the prior completed run, or None if there is none
        key_fn: Extracts the identity of an item (e.g. a name field)

    Returns:
        DiffResult with added, removed and unchanged_count
    """
    current = _index_by_key(current_items, key_fn)

    if prior_items is None:
        return DiffResult(added=list(current.values()), first_run=True)

    prior = _index_by_key(prior_items, key_fn)

    added = [item for key, item in current.items() if key not in prior]
    removed = [item for key, item in prior.items() if key not in current]
    unchanged_count = sum(1 for key in current if key in prior)

    return DiffResult(added=added, removed=removed, unchanged_count=unchanged_count)


def diff_against_run(
    current_items: Iterable[Any],
    prior_run: AutomationRun | None,
    key_fn: KeyFn,
    items_field: str,
) -> DiffResult:
    """Diff against the item list stored under `items_field` of a prior run."""
    if prior_run is None:
        return diff_items(current_items, None, key_fn)

    prior_items = (prior_run.output or {}).get(items_field)
    if not isinstance(prior_items, list):
        prior_items = []
    return diff_items(current_items, prior_items, key_fn)


def field_key(*field_names: str) -> KeyFn:
    """Build a key extractor returning the first non-empty of `field_names`.

    Non-dict items are used as their own key, so plain string lists diff
    naturally.
    """

    def _key(item: Any) -> Any:
        if not isinstance(item, dict):
            return item
        for name in field_names:
            value = item.get(name)
            if normalize_key(value) is not None:
                return value
        return None

    return _key
