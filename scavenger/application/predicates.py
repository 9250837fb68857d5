"""Predicate builders for the entry point: turn settings into caller callbacks.

Each builder returns a plain function. The loop accepts any callable with the
right shape, so callers embedding the library can pass their own instead.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from scavenger.domain.models import ProcessingInstruction

_MISSING = object()


def _split_path(path: str | Sequence[Any]) -> list[Any]:
    if isinstance(path, str):
        return [int(part) if part.isdigit() else part for part in path.split(".") if part]
    return list(path)


def lookup(payload: Any, path: str | Sequence[Any], default: Any = None) -> Any:
    """Follow a dotted path (``"notification.0.sender"``) through dicts and lists."""
    current = payload
    for part in _split_path(path):
        try:
            current = current[part]
        except (KeyError, IndexError, TypeError):
            return default
    return current


def field_equals(path: str | Sequence[Any], value: Any) -> Callable[[Any], bool]:
    """Delete messages whose field at path equals value (string comparison for scalars from env)."""

    def should_delete(payload: Any) -> bool:
        found = lookup(payload, path, _MISSING)
        if found is _MISSING:
            return False
        if isinstance(value, str) and not isinstance(found, str):
            return str(found) == value
        return bool(found == value)

    return should_delete


def field_key(path: str | Sequence[Any]) -> Callable[[Any], Any]:
    """Cycle key extractor reading one field. Missing fields yield None."""

    def extract_key(payload: Any) -> Any:
        return lookup(payload, path)

    return extract_key


def _parse_timestamp(raw: Any) -> datetime | None:
    if isinstance(raw, (int, float)):
        # Epoch milliseconds.
        return datetime.fromtimestamp(raw / 1000.0, tz=timezone.utc)
    if isinstance(raw, str):
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def stale_sender(
    sender: str,
    max_age_minutes: float,
    *,
    sender_path: str = "notification.0.sender",
    timestamp_path: str = "notification.4",
    now: Callable[[], datetime] | None = None,
) -> Callable[[Any], bool]:
    """Delete notifications from sender that are older than max_age_minutes.

    Timestamps may be ISO-8601 strings or epoch milliseconds. Messages whose
    timestamp cannot be read are kept.
    """
    clock = now or (lambda: datetime.now(timezone.utc))

    def should_delete(payload: Any) -> bool:
        if lookup(payload, sender_path) != sender:
            return False
        sent_at = _parse_timestamp(lookup(payload, timestamp_path))
        if sent_at is None:
            return False
        age_minutes = (clock() - sent_at).total_seconds() / 60.0
        return age_minutes > max_age_minutes

    return should_delete


def stop_after_removals(
    should_delete: Callable[[Any], bool],
    limit: int = 0,
) -> Callable[[Any], ProcessingInstruction]:
    """Adapt a boolean predicate to an instructed check_message.

    With limit > 0 the returned instruction asks the loop to stop on the
    limit-th removal. With limit == 0 it never asks to stop; the idle timeout ends the run.
    """
    if limit < 0:
        raise ValueError("limit must be >= 0")
    removed = 0

    def check_message(payload: Any) -> ProcessingInstruction:
        nonlocal removed
        remove = bool(should_delete(payload))
        if remove:
            removed += 1
        keep_going = limit == 0 or removed < limit
        return ProcessingInstruction(remove=remove, keep_going=keep_going)

    return check_message
