"""Priority entry parsing and delivery target resolution.

Raw priority entries come in three shapes:

- a plain token string: ``"fcm-token"``
- an object with one token: ``{"fcmToken": "fcm-token", ...}``
- an object with several tokens: ``{"tokens": ["a", "b"], ...}``

They are normalized once at intake into ``SinglePriority`` or
``ListPriority``. Anything unrecognizable becomes an empty
``ListPriority``, which resolves to no targets.
"""

from collections.abc import Iterable
from typing import Any

from sosrelay.schemas.priority import ListPriority, PriorityEntry, SinglePriority


def _clean_tokens(tokens: Iterable[Any]) -> tuple[str, ...]:
    """Drop non-string and blank tokens and duplicates, keeping order."""
    seen: dict[str, None] = {}
    for token in tokens:
        if isinstance(token, str) and token.strip():
            seen.setdefault(token.strip(), None)
    return tuple(seen)


def parse_priority(raw: Any) -> PriorityEntry:
    """Normalize one raw priority entry. Never raises."""
    if isinstance(raw, SinglePriority | ListPriority):
        return raw

    if isinstance(raw, str):
        tokens = _clean_tokens([raw])
        return SinglePriority(target=tokens[0]) if tokens else ListPriority()

    if not isinstance(raw, dict):
        return ListPriority()

    # Already normalized (e.g. read back from the store)
    kind = raw.get("kind")
    if kind == "single":
        return parse_priority(raw.get("target"))
    if kind == "list":
        targets = raw.get("targets")
        if isinstance(targets, list | tuple):
            return ListPriority(targets=_clean_tokens(targets))
        return ListPriority()

    fcm_token = raw.get("fcmToken")
    if isinstance(fcm_token, str) and fcm_token.strip():
        return SinglePriority(target=fcm_token.strip())

    tokens = raw.get("tokens")
    if isinstance(tokens, list | tuple):
        return ListPriority(targets=_clean_tokens(tokens))

    return ListPriority()


def parse_priorities(raw_entries: Iterable[Any]) -> list[PriorityEntry]:
    return [parse_priority(entry) for entry in raw_entries]


def resolve_targets(entry: Any) -> list[str]:
    """Return the ordered, de-duplicated delivery targets for an entry.

    Accepts normalized or raw entries. Malformed or empty input resolves
    to an empty list.
    """
    if entry is None:
        return []
    parsed = parse_priority(entry)
    if isinstance(parsed, SinglePriority):
        return [parsed.target]
    return list(parsed.targets)
