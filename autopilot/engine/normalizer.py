"""Extract a single item list from an arbitrarily shaped provider result.

The provider's result schema is not contractually guaranteed. The payload may
be a list, an object with the list under a conventional key, or an object
whose only list-valued property is the answer. Rules are applied in order and
the first match wins:

1. The payload is a list: return it.
2. The payload is an object and one of the known keys holds a list: return
   it. Known keys are checked in the order given, not in payload order.
3. Otherwise return the first list-valued property in the payload's own
   insertion order (JSON objects decode to insertion-ordered dicts).
4. Nothing matched: return an empty list.

Shape mismatches are never errors; an empty result is a routine outcome.
"""

import json
from collections.abc import Callable, Sequence
from typing import Any

from autopilot.core.logging import get_logger
from autopilot.schemas.run import NormalizedResult

logger = get_logger(__name__)

DEFAULT_RESULT_KEYS: tuple[str, ...] = ("items", "data", "results")

# Generic keys checked ahead of agent aliases; the rest of DEFAULT_RESULT_KEYS follows them
LEADING_RESULT_KEYS: tuple[str, ...] = ("items", "data")

Rule = Callable[[Any, Sequence[str]], tuple[list[Any], str] | None]


def _rule_is_list(payload: Any, known_keys: Sequence[str]) -> tuple[list[Any], str] | None:
    if isinstance(payload, list):
        return payload, "list"
    return None


def _rule_known_key(payload: Any, known_keys: Sequence[str]) -> tuple[list[Any], str] | None:
    if not isinstance(payload, dict):
        return None
    for key in known_keys:
        value = payload.get(key)
        if isinstance(value, list):
            return value, f"known_key:{key}"
    return None


def _rule_first_list(payload: Any, known_keys: Sequence[str]) -> tuple[list[Any], str] | None:
    if not isinstance(payload, dict):
        return None
    for key, value in payload.items():
        if isinstance(value, list):
            return value, f"first_list:{key}"
    return None


RULES: tuple[Rule, ...] = (_rule_is_list, _rule_known_key, _rule_first_list)


def merge_result_keys(*groups: Sequence[str]) -> tuple[str, ...]:
    """Combine key groups, keeping first-seen order and dropping duplicates."""
    merged: list[str] = []
    for group in groups:
        for key in group:
            if key not in merged:
                merged.append(key)
    return tuple(merged)


def agent_result_keys(
    aliases: Sequence[str], extras: Sequence[str] = ()
) -> tuple[str, ...]:
    """
    Known keys for one agent kind, in priority order.

    Agent aliases (e.g. "ads") come before the generic "results" key, so a
    payload carrying both yields the agent's own list. Configured extras go last.
    """
    return merge_result_keys(LEADING_RESULT_KEYS, aliases, DEFAULT_RESULT_KEYS, extras)


def coerce_payload(payload: Any) -> Any:
    """Parse a JSON-encoded string payload; other values pass through."""
    if not isinstance(payload, str):
        return payload
    try:
        return json.loads(payload)
    except ValueError:
        logger.bind(preview=payload[:100]).debug("result_payload_not_json")
        return None


def normalize_result(
    payload: Any,
    known_keys: Sequence[str] = DEFAULT_RESULT_KEYS,
) -> NormalizedResult:
    """
    Normalize a provider result payload into an ordered item list.

    Args:
        payload: Raw result (list, dict, JSON string, or None)
        known_keys: Conventional keys checked by rule 2, in priority order

    Returns:
        NormalizedResult with the items, the raw payload and the matched rule
    """
    shaped = coerce_payload(payload)

    for rule in RULES:
        match = rule(shaped, known_keys)
        if match is not None:
            items, matched_rule = match
            return NormalizedResult(items=list(items), raw=payload, matched_rule=matched_rule)

    return NormalizedResult(items=[], raw=payload, matched_rule="none")
