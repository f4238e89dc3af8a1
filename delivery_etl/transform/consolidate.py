"""Collapse item-level Olist records into one delivery record per order."""
import logging
from typing import Tuple

import numpy as np
import pandas as pd

from delivery_etl.utils.errors import DanglingReferenceError, EmptyOrderError, OrphanItemError

logger = logging.getLogger(__name__)

DELIVERED = "delivered"

# price desc, then earliest deadline; the trailing keys only make the order total
PRINCIPAL_ITEM_ORDER = [
    ("order_id", True),
    ("price", False),
    ("shipping_limit_date", True),
    ("order_item_id", True),
    ("product_id", True),
    ("seller_id", True),
]

RECORD_COLUMNS = [
    "order_id", "customer_id", "principal_seller_id", "principal_product_id",
    "product_weight", "seller_state", "customer_state",
    "purchase_ts", "carrier_handoff_ts", "customer_delivery_ts", "estimated_delivery_ts",
    "earliest_shipping_deadline", "total_item_price", "total_freight", "item_count",
]


def filter_deliverable_orders(orders: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split orders into (kept, excluded).

    Kept orders are delivered and carry a customer delivery timestamp.
    Excluded rows get an `exclusion_reason`; they are never an error.
    """
    status = orders["order_status"].astype("string").str.strip().str.lower()
    delivered = status.eq(DELIVERED).fillna(False).astype(bool)
    has_delivery_ts = orders["order_delivered_customer_date"].notna()

    kept = orders[delivered & has_delivery_ts].copy()
    excluded = orders[~(delivered & has_delivery_ts)].copy()
    excluded["exclusion_reason"] = np.where(
        delivered[excluded.index], "missing_delivery_timestamp", "status_not_delivered"
    )
    return kept, excluded


def check_item_integrity(orders: pd.DataFrame, items: pd.DataFrame) -> None:
    order_ids = set(orders["order_id"].dropna())
    orphan = ~items["order_id"].isin(order_ids)
    if orphan.any():
        raise OrphanItemError(items.loc[orphan, "order_id"].dropna().unique().tolist())


def rank_order_items(items: pd.DataFrame) -> pd.DataFrame:
    columns = [c for c, _ in PRINCIPAL_ITEM_ORDER]
    ascending = [a for _, a in PRINCIPAL_ITEM_ORDER]
    ranked = items.sort_values(columns, ascending=ascending, kind="mergesort",
                               na_position="last").copy()
    ranked["item_rank"] = ranked.groupby("order_id").cumcount() + 1
    return ranked


def select_principal_items(items: pd.DataFrame) -> pd.DataFrame:
    ranked = rank_order_items(items)
    principal = ranked[ranked["item_rank"] == 1]
    return principal[["order_id", "seller_id", "product_id"]].rename(columns={
        "seller_id": "principal_seller_id",
        "product_id": "principal_product_id",
    })


def aggregate_order_items(items: pd.DataFrame) -> pd.DataFrame:
    return items.groupby("order_id", as_index=False).agg(
        earliest_shipping_deadline=("shipping_limit_date", "min"),
        total_item_price=("price", "sum"),
        total_freight=("freight_value", "sum"),
        item_count=("order_item_id", "count"),
    )


def _require_resolved(df: pd.DataFrame, column: str, table: str, key: str) -> None:
    unresolved = df[column].isna()
    if unresolved.any():
        raise DanglingReferenceError(table, key, df.loc[unresolved, key].dropna().unique().tolist())


def consolidate_orders(tables: dict) -> pd.DataFrame:
    """
    Build one ConsolidatedDeliveryRecord per delivered order.

    Integrity violations (orphan items, delivered orders without items,
    unresolvable customer or seller) raise before anything is returned.
    """
    orders = tables["orders"]
    items = tables["order_items"]
    sellers = tables["sellers"]
    customers = tables["customers"]
    products = tables.get("products")

    check_item_integrity(orders, items)

    kept, excluded = filter_deliverable_orders(orders)
    for reason, count in excluded["exclusion_reason"].value_counts().sort_index().items():
        logger.info("Excluded %d order(s): %s", count, reason)

    kept_items = items[items["order_id"].isin(set(kept["order_id"]))]
    without_items = sorted(set(kept["order_id"]) - set(kept_items["order_id"]))
    if without_items:
        raise EmptyOrderError(without_items)

    records = kept[["order_id", "customer_id", "order_purchase_timestamp",
                    "order_delivered_carrier_date", "order_delivered_customer_date",
                    "order_estimated_delivery_date"]].rename(columns={
        "order_purchase_timestamp": "purchase_ts",
        "order_delivered_carrier_date": "carrier_handoff_ts",
        "order_delivered_customer_date": "customer_delivery_ts",
        "order_estimated_delivery_date": "estimated_delivery_ts",
    })
    records = records.merge(aggregate_order_items(kept_items), on="order_id", how="inner")
    records = records.merge(select_principal_items(kept_items), on="order_id", how="inner")

    records = records.merge(
        customers[["customer_id", "customer_state"]].drop_duplicates("customer_id"),
        on="customer_id", how="left",
    )
    _require_resolved(records, "customer_state", "customers", "customer_id")

    records = records.merge(
        sellers[["seller_id", "seller_state"]].drop_duplicates("seller_id")
        .rename(columns={"seller_id": "principal_seller_id"}),
        on="principal_seller_id", how="left",
    )
    _require_resolved(records, "seller_state", "sellers", "principal_seller_id")

    if products is not None and not products.empty:
        weights = (products[["product_id", "product_weight_g"]]
                   .drop_duplicates("product_id")
                   .rename(columns={"product_id": "principal_product_id",
                                    "product_weight_g": "product_weight"}))
        records = records.merge(weights, on="principal_product_id", how="left")
    else:
        records["product_weight"] = np.nan
    records["product_weight"] = records["product_weight"].astype("float64")

    records = records[RECORD_COLUMNS].sort_values("order_id", kind="mergesort")
    logger.info("Consolidated %d delivered order(s) from %d item(s)", len(records), len(kept_items))
    return records.reset_index(drop=True)
