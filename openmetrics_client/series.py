"""Data structures for metric series and rendered sample points."""
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar

from openmetrics_client.labels import LabelKey

R = TypeVar("R")


@dataclass
class SeriesPoint:
    """A single rendered sample with labels, ready for the encoder."""
    name: str
    labels: LabelKey
    value: float
    timestamp: Optional[float] = None


class SeriesStore(Generic[R]):
    """
    Mapping from label key to a per-series value record.

    Records are created on first write through ``factory``. Iteration is in
    insertion order. All access goes through ``lock`` so a render pass never
    sees a half-applied mutation of a single record.
    """

    def __init__(self, factory: Callable[[], R]):
        self.factory = factory
        self.lock = threading.RLock()
        self._records: Dict[LabelKey, R] = {}

    def get_or_create(self, key: LabelKey) -> R:
        """Return the record for key, creating a zero-state one if absent."""
        with self.lock:
            record = self._records.get(key)
            if record is None:
                record = self.factory()
                self._records[key] = record
            return record

    def get(self, key: LabelKey) -> Optional[R]:
        """Non-creating lookup."""
        with self.lock:
            return self._records.get(key)

    def reset(self, key: LabelKey) -> R:
        """Replace the record at key with a fresh zero-state record."""
        with self.lock:
            record = self.factory()
            self._records[key] = record
            return record

    def remove(self, key: LabelKey) -> Optional[R]:
        with self.lock:
            return self._records.pop(key, None)

    def clear(self) -> None:
        with self.lock:
            self._records.clear()

    def for_each(self, fn: Callable[[LabelKey, R], None]) -> None:
        """Call fn for every series while holding the store lock."""
        with self.lock:
            for key, record in self._records.items():
                fn(key, record)

    def __contains__(self, key: LabelKey) -> bool:
        with self.lock:
            return key in self._records

    def __len__(self) -> int:
        with self.lock:
            return len(self._records)
