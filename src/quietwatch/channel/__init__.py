"""
Channel delivery for QuietWatch.
"""

from .transport import (
    ChannelMessage,
    ChannelTransport,
    DifferenceKind,
    DifferenceResponse,
    TransportError,
)
from .reconciler import UpdateReconciler, ReconcilerState, coerce_int, extract_difference_state
from .memory import MemoryChannelTransport

__all__ = [
    "ChannelMessage",
    "ChannelTransport",
    "DifferenceKind",
    "DifferenceResponse",
    "TransportError",
    "UpdateReconciler",
    "ReconcilerState",
    "coerce_int",
    "extract_difference_state",
    "MemoryChannelTransport",
]
