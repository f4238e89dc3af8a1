import shutil
from pathlib import Path
from prefect import flow, task, get_client, get_run_logger
from prefect.concurrency.sync import concurrency
from prefect.exceptions import ObjectAlreadyExists
from delivery_etl.load.outlier_cache import OutlierCache, OutlierSnapshot
from delivery_etl.load.to_duckdb import TABLES, connect, publish_outlier_snapshot, read_outlier_snapshot
from delivery_etl.load.to_parquet import write_parquet_partitions
from delivery_etl.utils.errors import RefreshError
from delivery_etl.utils.io import load_config

REFRESH_LIMIT = "refresh-outliers"

def ensure_refresh_limit():
    # a global limit of one slot keeps at most one recomputation in flight
    with get_client(sync_client=True) as client:
        try:
            client.upsert_global_concurrency_limit_by_name(REFRESH_LIMIT, 1)
        except ObjectAlreadyExists:
            pass    # created by a run that started at the same time

@task
def read_refresh_inputs(cfg: dict):
    con = connect(cfg)
    try:
        records = con.execute(f"SELECT * FROM {TABLES['deliveries']}").fetch_df()
        current = read_outlier_snapshot(con)
    finally:
        con.close()
    return records, current

@task
def publish_snapshot(snapshot: OutlierSnapshot, cfg: dict) -> str:
    # exports are staged and only renamed into v{n} once the DuckDB commit succeeded
    outliers_dir = Path(cfg["gold"]) / "outliers"
    gold_dir = outliers_dir / f"v{snapshot.version}"
    staging_dir = outliers_dir / f".v{snapshot.version}.pending"
    shutil.rmtree(staging_dir, ignore_errors=True)
    try:
        write_parquet_partitions(snapshot.thresholds, base_dir=str(staging_dir), filename="regional_thresholds.parquet")
        write_parquet_partitions(snapshot.classifications, base_dir=str(staging_dir), filename="outlier_classifications.parquet")
        con = connect(cfg)
        try:
            publish_outlier_snapshot(con, snapshot)
        finally:
            con.close()
    except Exception:
        shutil.rmtree(staging_dir, ignore_errors=True)
        raise
    shutil.rmtree(gold_dir, ignore_errors=True)    # leftover of a run that never committed
    staging_dir.rename(gold_dir)
    return str(gold_dir)

@flow(name="refresh_outliers")
def refresh_outliers(config_path: str = "configs/config.yaml") -> int:
    """Explicit refresh of the regional outlier snapshot; consolidation never triggers it."""
    cfg = load_config(config_path)
    logger = get_run_logger()
    opts = cfg["outliers"]
    ensure_refresh_limit()
    with concurrency(REFRESH_LIMIT, occupy=1, strict=True):
        try:
            records, current = read_refresh_inputs(cfg)
            cache = OutlierCache(opts["iqr_multiplier"], opts["min_partition_size"],
                                 publisher=lambda snap: publish_snapshot(snap, cfg), initial=current)
            snapshot = cache.refresh(records)
        except RefreshError as exc:
            logger.error(f"Outlier refresh failed, published snapshot left untouched: {exc}")
            raise
        except Exception as exc:
            logger.error(f"Outlier refresh failed, published snapshot left untouched: {exc}")
            raise RefreshError(f"outlier refresh failed: {exc}") from exc
    logger.info(f"Published outlier snapshot v{snapshot.version}: "
                f"{len(snapshot)} delayed orders, {len(snapshot.thresholds)} states")
    return snapshot.version

if __name__ == "__main__":
    refresh_outliers()
