"""Bounded queue scavenger: consume a queue once, remove what a predicate selects, put back the rest."""
from scavenger.application.scavenge_loop import ScavengeLoop, scavenge_queue
from scavenger.domain.errors import IdleTimeoutError, InvalidDeliveryError, ScavengeError
from scavenger.domain.models import CycleDetect, Instructed, LoopStrategy, ProcessingInstruction

__all__ = [
    "CycleDetect",
    "IdleTimeoutError",
    "Instructed",
    "InvalidDeliveryError",
    "LoopStrategy",
    "ProcessingInstruction",
    "ScavengeError",
    "ScavengeLoop",
    "scavenge_queue",
]
