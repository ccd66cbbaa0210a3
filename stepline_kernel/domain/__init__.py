"""
Pure kernel domain helpers.

Nothing here touches the database or performs I/O (SystemClock is the one
sanctioned exception for reading the current time).
"""

from stepline_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
]
