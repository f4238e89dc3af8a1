"""
Delay responsibility for late orders.

Seller and carrier checks are independent: an order can be tagged with both,
so seller and carrier shares may add up to more than the late-order count.
"""
import pandas as pd

from delivery_etl.utils.ratios import safe_rate

ATTRIBUTION_COLUMNS = ["order_id", "customer_state", "seller_state",
                       "seller_fault", "carrier_fault", "both_fault"]


def late_mask(records: pd.DataFrame) -> pd.Series:
    return (records["lead_time_days"] > records["sla_days"]).fillna(False).astype(bool)


def attribute_responsibility(records: pd.DataFrame) -> pd.DataFrame:
    late = records[late_mask(records)]

    # NaT comparisons are False, so a missing carrier handoff tags neither side
    seller_fault = late["carrier_handoff_ts"] > late["earliest_shipping_deadline"]
    carrier_budget = late["estimated_delivery_ts"] - late["earliest_shipping_deadline"]
    carrier_used = late["customer_delivery_ts"] - late["carrier_handoff_ts"]
    carrier_fault = carrier_budget < carrier_used

    out = late[["order_id", "customer_state", "seller_state"]].copy()
    out["seller_fault"] = seller_fault.astype(bool)
    out["carrier_fault"] = carrier_fault.astype(bool)
    out["both_fault"] = out["seller_fault"] & out["carrier_fault"]
    return out[ATTRIBUTION_COLUMNS].reset_index(drop=True)


def summarize_responsibility(records: pd.DataFrame, attribution: pd.DataFrame) -> dict:
    total = len(records)
    late = len(attribution)
    seller = int(attribution["seller_fault"].sum())
    carrier = int(attribution["carrier_fault"].sum())
    both = int(attribution["both_fault"].sum())
    return {
        "total_orders": total,
        "late_orders": late,
        "seller_fault_orders": seller,
        "carrier_fault_orders": carrier,
        "both_fault_orders": both,
        "late_rate": safe_rate(late, total),
        "seller_fault_rate": safe_rate(seller, late),
        "carrier_fault_rate": safe_rate(carrier, late),
        "both_fault_rate": safe_rate(both, late),
    }
