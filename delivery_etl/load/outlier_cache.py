"""
Cached outlier snapshot with explicit refresh.

Readers always see one complete snapshot. A refresh builds the next snapshot
off to the side and publishes it with a single reference swap; nothing is
invalidated automatically when the underlying records change.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

import pandas as pd

from delivery_etl.transform.outliers import (DEFAULT_IQR_MULTIPLIER, DEFAULT_MIN_PARTITION_SIZE,
                                             build_outlier_tables)
from delivery_etl.utils.errors import RefreshError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class OutlierSnapshot:
    version: int
    refreshed_at: datetime
    thresholds: pd.DataFrame
    classifications: pd.DataFrame
    _status_by_order: dict = field(default_factory=dict, repr=False, compare=False)
    _threshold_by_state: dict = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def build(cls, version: int, thresholds: pd.DataFrame, classifications: pd.DataFrame,
              refreshed_at: Optional[datetime] = None) -> "OutlierSnapshot":
        return cls(
            version=version,
            refreshed_at=refreshed_at or datetime.now(timezone.utc),
            thresholds=thresholds,
            classifications=classifications,
            _status_by_order=dict(zip(classifications["order_id"], classifications["status"])),
            _threshold_by_state={row["customer_state"]: row
                                 for row in thresholds.to_dict(orient="records")},
        )

    def status_of(self, order_id: str) -> Optional[str]:
        """None for orders that were not late when the snapshot was taken."""
        return self._status_by_order.get(order_id)

    def threshold_for(self, customer_state: str) -> Optional[dict]:
        row = self._threshold_by_state.get(customer_state)
        return dict(row) if row is not None else None

    def __len__(self) -> int:
        return len(self._status_by_order)


class OutlierCache:
    """
    Holds the current snapshot and serializes refreshes.

    `publisher`, when given, is called with each new snapshot before it is
    swapped in; if it raises, the refresh fails and the old snapshot stays.
    """

    def __init__(self, iqr_multiplier: float = DEFAULT_IQR_MULTIPLIER,
                 min_partition_size: int = DEFAULT_MIN_PARTITION_SIZE,
                 publisher: Optional[Callable[[OutlierSnapshot], None]] = None,
                 initial: Optional[OutlierSnapshot] = None):
        self.iqr_multiplier = iqr_multiplier
        self.min_partition_size = min_partition_size
        self._publisher = publisher
        self._snapshot: Optional[OutlierSnapshot] = initial
        self._refresh_lock = threading.Lock()

    @property
    def snapshot(self) -> Optional[OutlierSnapshot]:
        return self._snapshot

    @property
    def version(self) -> int:
        snapshot = self._snapshot
        return snapshot.version if snapshot is not None else 0

    def status_of(self, order_id: str) -> Optional[str]:
        snapshot = self._snapshot
        return snapshot.status_of(order_id) if snapshot is not None else None

    def refresh(self, records: pd.DataFrame) -> OutlierSnapshot:
        """
        Recompute thresholds and classifications from `records` and publish them.

        Concurrent callers are serialized. If the computation or the
        publisher fails the current snapshot stays and RefreshError is raised.
        """
        with self._refresh_lock:
            try:
                thresholds, classifications = build_outlier_tables(
                    records, self.iqr_multiplier, self.min_partition_size)
                snapshot = OutlierSnapshot.build(self.version + 1, thresholds, classifications)
                if self._publisher is not None:
                    self._publisher(snapshot)
            except RefreshError:
                logger.error("Outlier refresh rejected, keeping version %d", self.version)
                raise
            except Exception as exc:
                logger.error("Outlier refresh failed, keeping version %d: %s", self.version, exc)
                raise RefreshError(f"outlier refresh failed: {exc}") from exc
            self._snapshot = snapshot
        logger.info("Published outlier snapshot version %d (%d orders)",
                    snapshot.version, len(snapshot))
        return snapshot
