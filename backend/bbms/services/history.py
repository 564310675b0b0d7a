import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from bbms.schemas.document import AuditDocument
from bbms.services.readings import extract_reading


@dataclass(frozen=True)
class HistoryPoint:
    timestamp: datetime
    value: float
    exceeds_limit: bool
    battery_voltage: Optional[float] = None


def build_history(
    documents: Iterable[AuditDocument],
    limit: float,
    core_id: Optional[str] = None,
) -> List[HistoryPoint]:
    """Oldest-first temperature series from cached ledger documents.

    Documents without a positive temperature are left out.
    """
    selected = [doc for doc in documents if core_id is None or doc.core_id == core_id]
    points: List[HistoryPoint] = []
    for document in sorted(selected, key=lambda doc: doc.updated):
        reading = extract_reading(document.payload)
        value = reading.temperature
        if value is None or value <= 0:
            continue
        points.append(
            HistoryPoint(
                timestamp=document.updated,
                value=value,
                exceeds_limit=value > limit,
                battery_voltage=reading.battery_voltage,
            )
        )
    return points


class ReloadThrottle:
    """Lets a reload through at most once per ``window`` seconds."""

    def __init__(self, window: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.window = window
        self._clock = clock
        self._last: Optional[float] = None

    def should_run(self) -> bool:
        now = self._clock()
        if self._last is not None and now - self._last < self.window:
            return False
        self._last = now
        return True
