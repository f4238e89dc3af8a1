import glob
import logging

import pandas as pd

from delivery_etl.utils.errors import MissingColumnsError

logger = logging.getLogger(__name__)

# required columns and the subset parsed as timestamps, per raw table
RAW_SCHEMA = {
    "orders": {
        "required": ["order_id", "customer_id", "order_status",
                     "order_purchase_timestamp", "order_delivered_carrier_date",
                     "order_delivered_customer_date", "order_estimated_delivery_date"],
        "timestamps": ["order_purchase_timestamp", "order_approved_at",
                       "order_delivered_carrier_date", "order_delivered_customer_date",
                       "order_estimated_delivery_date"],
    },
    "order_items": {
        "required": ["order_id", "order_item_id", "product_id", "seller_id",
                     "shipping_limit_date", "price", "freight_value"],
        "timestamps": ["shipping_limit_date"],
    },
    "sellers": {"required": ["seller_id", "seller_state"], "timestamps": []},
    "customers": {"required": ["customer_id", "customer_state"], "timestamps": []},
    "products": {"required": ["product_id", "product_weight_g"], "timestamps": []},
}

OPTIONAL_TABLES = {"products"}


def load_csv_glob(pattern: str) -> pd.DataFrame:
    files = sorted(glob.glob(pattern))
    if not files:
        return pd.DataFrame()
    return pd.concat((pd.read_csv(f) for f in files), ignore_index=True)


def require_columns(df: pd.DataFrame, table: str, columns: list) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise MissingColumnsError(table, missing)


def parse_raw_table(table: str, df: pd.DataFrame) -> pd.DataFrame:
    schema = RAW_SCHEMA[table]
    df = df.copy()
    df.columns = [str(c).strip().lower() for c in df.columns]
    require_columns(df, table, schema["required"])
    for col in schema["timestamps"]:
        if col in df.columns:
            df[col] = pd.to_datetime(df[col], errors="coerce")
    if table == "order_items":
        df["price"] = pd.to_numeric(df["price"], errors="coerce")
        df["freight_value"] = pd.to_numeric(df["freight_value"], errors="coerce").fillna(0.0)
    if table == "products":
        # absent weight must stay NaN, never 0
        df["product_weight_g"] = pd.to_numeric(df["product_weight_g"], errors="coerce")
    for key in ("order_id", "customer_id", "seller_id", "product_id"):
        if key in df.columns:
            df[key] = df[key].astype("string")
    return df


def empty_products() -> pd.DataFrame:
    return pd.DataFrame({"product_id": pd.Series(dtype="string"),
                         "product_weight_g": pd.Series(dtype="float64")})


def read_raw_table(table: str, cfg: dict) -> pd.DataFrame:
    """Raw CSV rows for one table; a missing optional table comes back empty."""
    pattern = cfg.get("sources", {}).get(table, {}).get("path")
    df = load_csv_glob(pattern) if pattern else pd.DataFrame()
    if df.empty and table in OPTIONAL_TABLES:
        logger.info("%s: no source files, continuing without it", table)
        return empty_products()
    if df.empty and not len(df.columns):
        raise MissingColumnsError(table, RAW_SCHEMA[table]["required"])
    return df
