"""
Lot ordering policies for allocation.

Each policy takes candidate inventory rows and returns them in the order they
should be consumed. Policies are pure: no queries, no side effects.
"""

from datetime import date, datetime
from typing import Callable, Dict, Iterable, List

from .models import AllocationStrategy

# Sorts after every real expiry date
_NO_EXPIRY = date.max


def _received(lot) -> datetime:
    return lot.received_date


def _tie_break(lot):
    return (lot.created_at, str(lot.id))


def fifo(lots: Iterable) -> List:
    """Oldest received first."""
    return sorted(lots, key=lambda lot: (_received(lot), _tie_break(lot)))


def fefo(lots: Iterable) -> List:
    """Earliest expiry first; lots without expiry last, then oldest received."""
    return sorted(
        lots,
        key=lambda lot: (lot.expiry_date or _NO_EXPIRY, _received(lot), _tie_break(lot)),
    )


def lifo(lots: Iterable) -> List:
    """Most recently received first."""
    return sorted(lots, key=lambda lot: (_received(lot), _tie_break(lot)), reverse=True)


def manual(lots: Iterable) -> List:
    """
    Placeholder until lots can be chosen by an operator: behaves like FIFO.
    """
    return fifo(lots)


POLICIES: Dict[str, Callable[[Iterable], List]] = {
    AllocationStrategy.FIFO: fifo,
    AllocationStrategy.FEFO: fefo,
    AllocationStrategy.LIFO: lifo,
    AllocationStrategy.MANUAL: manual,
}


def order_candidates(strategy: str, lots: Iterable) -> List:
    """Apply the named policy; unknown strategies fall back to FIFO."""
    return POLICIES.get(strategy, fifo)(lots)
