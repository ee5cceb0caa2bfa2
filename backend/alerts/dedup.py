"""
Alert Deduplication — merge fresh alerts into a bounded, newest-first buffer.

An alert is suppressed while a non-dismissed entry with the same
(type, title) exists within the dedup window. Accepted alerts are returned
so the caller can notify once per alert.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import timedelta

from alerts.models import InstantAlert

DEFAULT_WINDOW = timedelta(minutes=5)
DEFAULT_CAPACITY = 10


@dataclass(frozen=True)
class MergeResult:
    buffer: tuple[InstantAlert, ...]
    accepted: tuple[InstantAlert, ...]
    suppressed: tuple[InstantAlert, ...]


def is_duplicate(existing: InstantAlert, candidate: InstantAlert, window: timedelta = DEFAULT_WINDOW) -> bool:
    return (
        existing.type == candidate.type
        and existing.title == candidate.title
        and not existing.dismissed
        and abs(existing.timestamp - candidate.timestamp) < window
    )


def merge_alerts(
    buffer: Sequence[InstantAlert],
    new_alerts: Sequence[InstantAlert],
    window: timedelta = DEFAULT_WINDOW,
    capacity: int = DEFAULT_CAPACITY,
) -> MergeResult:
    """Prepend each non-duplicate alert, evicting the oldest beyond ``capacity``.

    Alerts are processed in order, so a later alert in ``new_alerts`` is also
    checked against earlier ones accepted in the same call.
    """
    merged = list(buffer)[:capacity]
    accepted = []
    suppressed = []
    for alert in new_alerts:
        if any(is_duplicate(existing, alert, window) for existing in merged):
            suppressed.append(alert)
            continue
        merged = [alert, *merged][:capacity]
        accepted.append(alert)
    return MergeResult(buffer=tuple(merged), accepted=tuple(accepted), suppressed=tuple(suppressed))
