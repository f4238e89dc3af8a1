from datetime import timezone
from pathlib import Path
from typing import Optional

import duckdb
import pandas as pd

from delivery_etl.load.outlier_cache import OutlierSnapshot
from delivery_etl.utils.errors import RefreshError

TABLES = {
    "deliveries": "fact_deliveries",
    "responsibility": "fact_responsibility",
}

SNAPSHOT_TABLES = {
    "thresholds": "regional_thresholds",
    "classifications": "outlier_classifications",
    "meta": "outlier_snapshot_meta",
}


def connect(cfg: dict, read_only: bool = False) -> duckdb.DuckDBPyConnection:
    path = cfg.get("duckdb_path", "data/warehouse/logistics.duckdb")
    if not read_only:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(path, read_only=read_only)


def upsert_duckdb(domain: str, gold_path: str, cfg: dict) -> str:
    # consolidation is a full recompute, so the fact table is replaced wholesale
    table = TABLES[domain]
    con = connect(cfg)
    try:
        con.execute(f"CREATE OR REPLACE TABLE {table} AS SELECT * FROM read_parquet('{gold_path}');")
    finally:
        con.close()
    return f"Replaced {table}"


def _table_exists(con, table: str) -> bool:
    row = con.execute(
        "SELECT count(*) FROM information_schema.tables WHERE table_name = ?", [table]
    ).fetchone()
    return bool(row[0])


def published_version(con) -> int:
    if not _table_exists(con, SNAPSHOT_TABLES["meta"]):
        return 0
    row = con.execute(f"SELECT max(version) FROM {SNAPSHOT_TABLES['meta']}").fetchone()
    return int(row[0]) if row and row[0] is not None else 0


def publish_outlier_snapshot(con, snapshot: OutlierSnapshot) -> None:
    """
    Replace all snapshot tables in one transaction; on error nothing changes.

    The snapshot must be the direct successor of the published version,
    otherwise a concurrent refresh already won and RefreshError is raised.
    """
    meta = pd.DataFrame([{
        "version": snapshot.version,
        "refreshed_at": snapshot.refreshed_at.astimezone(timezone.utc).replace(tzinfo=None),
        "classified_orders": len(snapshot.classifications),
        "states": len(snapshot.thresholds),
    }])
    staged = {
        "thresholds": snapshot.thresholds,
        "classifications": snapshot.classifications,
        "meta": meta,
    }
    for name, df in staged.items():
        con.register(f"staged_{name}", df)
    try:
        con.execute("BEGIN TRANSACTION;")
        try:
            current = published_version(con)
            if current != snapshot.version - 1:
                raise RefreshError(
                    f"stale outlier snapshot v{snapshot.version}: v{current} is already published")
            for name, table in SNAPSHOT_TABLES.items():
                con.execute(f"CREATE OR REPLACE TABLE {table} AS SELECT * FROM staged_{name};")
            con.execute("COMMIT;")
        except Exception:
            con.execute("ROLLBACK;")
            raise
    finally:
        for name in staged:
            con.unregister(f"staged_{name}")


def read_outlier_snapshot(con) -> Optional[OutlierSnapshot]:
    # one read transaction pins a single published version across all tables
    con.execute("BEGIN TRANSACTION;")
    try:
        if published_version(con) == 0:
            meta = None
        else:
            meta = con.execute(f"SELECT * FROM {SNAPSHOT_TABLES['meta']}").fetch_df().iloc[0]
            thresholds = con.execute(
                f"SELECT * FROM {SNAPSHOT_TABLES['thresholds']} ORDER BY customer_state").fetch_df()
            classifications = con.execute(
                f"SELECT * FROM {SNAPSHOT_TABLES['classifications']} "
                "ORDER BY customer_state, lead_time_days DESC, order_id").fetch_df()
    finally:
        con.execute("ROLLBACK;")
    if meta is None:
        return None
    refreshed_at = pd.Timestamp(meta["refreshed_at"]).to_pydatetime().replace(tzinfo=timezone.utc)
    return OutlierSnapshot.build(int(meta["version"]), thresholds, classifications, refreshed_at)
