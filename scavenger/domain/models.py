"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Union

from scavenger.constants import (
    DEFAULT_DRAIN_GRACE_SECONDS,
    DEFAULT_IDLE_TIMEOUT_SECONDS,
    LoopPhase,
)


@dataclass(frozen=True)
class ProcessingInstruction:
    """What an instructed loop does with one message, and whether it goes on."""

    remove: bool
    keep_going: bool

    @staticmethod
    def coerce(value: Any) -> "ProcessingInstruction":
        """Accept an instruction, a ``(remove, keep_going)`` pair, or a mapping.

        Mappings may spell the flags ``remove``/``delete`` and ``keep_going``/``continue``.
        """
        if isinstance(value, ProcessingInstruction):
            return value
        if isinstance(value, Mapping):
            remove = value.get("remove", value.get("delete"))
            keep_going = value.get("keep_going", value.get("continue"))
            if remove is None or keep_going is None:
                raise TypeError(
                    "instruction mapping needs 'remove' (or 'delete') and 'keep_going' (or 'continue')"
                )
            return ProcessingInstruction(remove=bool(remove), keep_going=bool(keep_going))
        if isinstance(value, tuple) and len(value) == 2:
            return ProcessingInstruction(remove=bool(value[0]), keep_going=bool(value[1]))
        raise TypeError(f"cannot interpret {type(value).__name__} as a processing instruction")


ShouldDelete = Callable[[Any], bool]
KeyExtractor = Callable[[Any], Any]
CheckMessage = Callable[[Any], Any]


@dataclass(frozen=True)
class CycleDetect:
    """Stop once the first message's key comes round again. No idle timeout."""

    should_delete: ShouldDelete
    extract_key: KeyExtractor
    drain_grace_seconds: float = DEFAULT_DRAIN_GRACE_SECONDS

    def __post_init__(self) -> None:
        if self.drain_grace_seconds < 0:
            raise ValueError("drain_grace_seconds must be >= 0")


@dataclass(frozen=True)
class Instructed:
    """Stop when the caller says so, or when the queue goes quiet for too long."""

    check_message: CheckMessage
    idle_timeout_seconds: float = DEFAULT_IDLE_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if self.idle_timeout_seconds <= 0:
            raise ValueError("idle_timeout_seconds must be positive")


LoopStrategy = Union[CycleDetect, Instructed]


@dataclass
class LoopState:
    """Mutable per-run state, touched only by the loop controller."""

    removed_count: int = 0
    stopped: bool = False
    phase: LoopPhase = LoopPhase.STARTING
