"""
Per-state Tukey upper fence over delayed orders.

Each customer_state gets its own Q1/Q3 so structurally slow regions are
judged against their own baseline. Only orders with delay_days > 0 take
part; there is no lower fence.
"""
import logging
from typing import Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

CRITICAL_OUTLIER = "critical_outlier"
NORMAL_DELAY = "normal_delay"

DEFAULT_IQR_MULTIPLIER = 1.5
DEFAULT_MIN_PARTITION_SIZE = 4

THRESHOLD_COLUMNS = ["customer_state", "delayed_orders", "q1_delay", "q3_delay",
                     "iqr", "max_acceptable_delay", "low_confidence"]
CLASSIFICATION_COLUMNS = ["order_id", "customer_state", "sla_days", "lead_time_days",
                          "delay_days", "max_acceptable_delay", "status", "low_confidence"]


def delay_quartiles(values) -> Tuple[float, float]:
    """Q1 and Q3 by linear interpolation between order statistics (PERCENTILE_CONT)."""
    series = pd.Series(values, dtype="float64").dropna()
    if series.empty:
        raise ValueError("cannot compute quartiles of an empty delay sample")
    q = series.quantile([0.25, 0.75], interpolation="linear")
    return float(q.loc[0.25]), float(q.loc[0.75])


def delayed_orders(records: pd.DataFrame) -> pd.DataFrame:
    return records[(records["delay_days"] > 0).fillna(False).astype(bool)]


def regional_thresholds(records: pd.DataFrame,
                        iqr_multiplier: float = DEFAULT_IQR_MULTIPLIER,
                        min_partition_size: int = DEFAULT_MIN_PARTITION_SIZE) -> pd.DataFrame:
    delayed = delayed_orders(records)
    rows = []
    for state, group in delayed.groupby("customer_state", sort=True):
        q1, q3 = delay_quartiles(group["delay_days"])
        iqr = q3 - q1
        rows.append({
            "customer_state": state,
            "delayed_orders": len(group),
            "q1_delay": q1,
            "q3_delay": q3,
            "iqr": iqr,
            "max_acceptable_delay": q3 + iqr_multiplier * iqr,
            "low_confidence": len(group) < min_partition_size,
        })

    thresholds = pd.DataFrame(rows, columns=THRESHOLD_COLUMNS)
    thresholds["delayed_orders"] = thresholds["delayed_orders"].astype("int64")
    thresholds["low_confidence"] = thresholds["low_confidence"].astype(bool)
    small = thresholds.loc[thresholds["low_confidence"], "customer_state"].tolist()
    if small:
        logger.warning("Fewer than %d delayed orders in %s; fences flagged low_confidence",
                       min_partition_size, small)
    return thresholds


def classify_outliers(records: pd.DataFrame, thresholds: pd.DataFrame) -> pd.DataFrame:
    delayed = delayed_orders(records)[["order_id", "customer_state", "sla_days",
                                       "lead_time_days", "delay_days"]]
    out = delayed.merge(thresholds[["customer_state", "max_acceptable_delay", "low_confidence"]],
                        on="customer_state", how="inner")
    out["status"] = np.where(out["delay_days"].astype("float64") > out["max_acceptable_delay"],
                             CRITICAL_OUTLIER, NORMAL_DELAY)
    out = out.sort_values(["customer_state", "lead_time_days", "order_id"],
                          ascending=[True, False, True], kind="mergesort")
    return out[CLASSIFICATION_COLUMNS].reset_index(drop=True)


def build_outlier_tables(records: pd.DataFrame,
                         iqr_multiplier: float = DEFAULT_IQR_MULTIPLIER,
                         min_partition_size: int = DEFAULT_MIN_PARTITION_SIZE
                         ) -> Tuple[pd.DataFrame, pd.DataFrame]:
    thresholds = regional_thresholds(records, iqr_multiplier, min_partition_size)
    classifications = classify_outliers(records, thresholds)
    logger.info("Classified %d delayed order(s) across %d state(s), %d critical",
                len(classifications), len(thresholds),
                int((classifications["status"] == CRITICAL_OUTLIER).sum()))
    return thresholds, classifications
