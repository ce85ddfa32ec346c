"""Bounded, newest-first buffer of the most recent samples of one session."""

from typing import Callable

from simulator.schemas import Sample

SampleCallback = Callable[[Sample], None]


class TelemetryStore:
    """
    Append-only window over the latest ``capacity`` samples.

    Contents are kept ordered newest-first by timestamp; a late sample is
    slotted in by timestamp rather than prepended. Appends are idempotent on
    ``Sample.id`` and rebuild an immutable tuple that is swapped in whole, so
    readers always see a consistent snapshot.
    """

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._samples: tuple[Sample, ...] = ()
        self._ids: set[str] = set()
        self._subscribers: list[SampleCallback] = []

    def append(self, sample: Sample) -> bool:
        """Insert a sample, evicting the oldest beyond capacity.

        Returns False for a duplicate id and for a sample too old to be retained.
        """
        if sample.id in self._ids:
            return False

        position = 0
        for position, held in enumerate(self._samples):
            if sample.timestamp >= held.timestamp:
                break
        else:
            position = len(self._samples)

        samples = self._samples[:position] + (sample,) + self._samples[position:]
        evicted = samples[self.capacity:]
        samples = samples[: self.capacity]

        self._samples = samples
        self._ids.add(sample.id)
        for old in evicted:
            self._ids.discard(old.id)

        if sample.id not in self._ids:
            return False
        for callback in list(self._subscribers):
            callback(sample)
        return True

    def current(self) -> tuple[Sample, ...]:
        return self._samples

    @property
    def head(self) -> Sample | None:
        return self._samples[0] if self._samples else None

    def subscribe(self, callback: SampleCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def __len__(self) -> int:
        return len(self._samples)

    def __contains__(self, sample_id: str) -> bool:
        return sample_id in self._ids
