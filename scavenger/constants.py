"""Scavenger-level constants shared across modules."""
from __future__ import annotations

from enum import Enum

# Gap allowed between deliveries before an instructed loop gives up.
DEFAULT_IDLE_TIMEOUT_SECONDS = 1.5

# Wait after cancelling a cycle-detect subscription, for in-flight deliveries to land.
DEFAULT_DRAIN_GRACE_SECONDS = 1.0


class LoopPhase(str, Enum):
    STARTING = "STARTING"
    CONSUMING = "CONSUMING"
    STOPPING_NORMAL = "STOPPING_NORMAL"
    STOPPING_ERROR = "STOPPING_ERROR"
    STOPPING_TIMEOUT = "STOPPING_TIMEOUT"
    CLOSED = "CLOSED"


class STRATEGY:
    CYCLE = "cycle"
    INSTRUCTED = "instructed"


class PAYLOAD_FORMAT:
    JSON = "json"
    RAW = "raw"
