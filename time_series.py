# time_series.py
"""Capacity-bounded price history with a fixed-grid update gate.

The store keeps its points oldest-first in a ``deque(maxlen=max_data_points)``
and hands them out newest first. Each accepted poke is stamped with the slot it
fills (the current ``next_earliest_update``) and then advances the schedule by
exactly one ``update_interval``, however late the poke arrived.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import List, Protocol, Sequence, Tuple

from errors import InsufficientHistory, InvalidConfiguration, TooSoon
from models import PricePoint

log = logging.getLogger(__name__)


class DataSource(Protocol):
    def read(self, store: "TimeSeriesStore", now: int) -> PricePoint:
        ...


@dataclass(frozen=True)
class StoreSnapshot:
    """Everything needed to resume a store: values oldest-first plus the schedule."""
    values: Tuple[int, ...]
    next_earliest_update: int


class TimeSeriesStore:
    def __init__(
        self,
        update_interval: int,
        max_data_points: int,
        data_source: DataSource,
        seeded_values: Sequence[int],
        next_earliest_update: int,
        now: int,
        data_description: str = "",
    ) -> None:
        if update_interval <= 0:
            raise InvalidConfiguration("update_interval must be > 0")
        if max_data_points <= 0:
            raise InvalidConfiguration("max_data_points must be > 0")
        if not seeded_values:
            raise InvalidConfiguration("at least one seeded value is required")
        if len(seeded_values) > max_data_points:
            raise InvalidConfiguration(
                f"{len(seeded_values)} seeded values exceed max_data_points={max_data_points}"
            )
        if next_earliest_update < now:
            raise InvalidConfiguration("next_earliest_update is in the past")
        if next_earliest_update < len(seeded_values) * update_interval:
            raise InvalidConfiguration("seeded values would be stamped before epoch 0")

        self.update_interval = update_interval
        self.max_data_points = max_data_points
        self.data_source = data_source
        self.data_description = data_description
        self.next_earliest_update = next_earliest_update
        self._points: deque[PricePoint] = deque(maxlen=max_data_points)

        n = len(seeded_values)
        for i, value in enumerate(seeded_values):
            slot = next_earliest_update - (n - i) * update_interval
            self._points.append(PricePoint(value=value, timestamp=slot))

    @classmethod
    def restore(
        cls,
        snapshot: StoreSnapshot,
        update_interval: int,
        max_data_points: int,
        data_source: DataSource,
        data_description: str = "",
    ) -> "TimeSeriesStore":
        return cls(
            update_interval=update_interval,
            max_data_points=max_data_points,
            data_source=data_source,
            seeded_values=snapshot.values,
            next_earliest_update=snapshot.next_earliest_update,
            now=snapshot.next_earliest_update,
            data_description=data_description,
        )

    def __len__(self) -> int:
        return len(self._points)

    def poke(self, now: int) -> PricePoint:
        """Append the data source's next observation if the slot is due."""
        if now < self.next_earliest_update:
            raise TooSoon(
                f"{self.data_description or 'store'}: next update at "
                f"{self.next_earliest_update}, now {now}"
            )

        observation = self.data_source.read(self, now)
        point = PricePoint(value=observation.value, timestamp=self.next_earliest_update)

        self._points.append(point)
        self.next_earliest_update += self.update_interval
        log.info(
            f"{self.data_description or 'store'}: recorded value={point.value} "
            f"slot={point.timestamp} next={self.next_earliest_update}"
        )
        return point

    def read(self, count: int) -> List[PricePoint]:
        """Return the newest ``count`` points, newest first."""
        if count < 0:
            raise InvalidConfiguration("count must be >= 0")
        if count > len(self._points):
            raise InsufficientHistory(f"requested {count} points, have {len(self._points)}")
        n = len(self._points)
        return [self._points[n - 1 - i] for i in range(count)]

    def read_values(self, count: int) -> List[int]:
        return [p.value for p in self.read(count)]

    def latest(self) -> PricePoint:
        return self._points[-1]

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            values=tuple(p.value for p in self._points),
            next_earliest_update=self.next_earliest_update,
        )
