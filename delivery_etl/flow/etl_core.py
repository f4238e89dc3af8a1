import pandas as pd
from pathlib import Path
from prefect import flow, task, get_run_logger
from delivery_etl.extract.csv_loader import RAW_SCHEMA, read_raw_table, parse_raw_table
from delivery_etl.transform.consolidate import consolidate_orders
from delivery_etl.transform.metrics import derive_metrics
from delivery_etl.transform.segments import annotate_segments
from delivery_etl.transform.responsibility import attribute_responsibility, summarize_responsibility
from delivery_etl.load.to_parquet import write_parquet_partitions, layer_path
from delivery_etl.load.to_duckdb import upsert_duckdb
from delivery_etl.quality.gx_checks import run_gx_suite
from delivery_etl.utils.errors import QualityCheckError
from delivery_etl.utils.io import load_config

@task(retries=2, retry_delay_seconds=30)
def stage_bronze(table: str, cfg: dict):
    df = read_raw_table(table, cfg)
    bronze_dir = str(Path(cfg["bronze"]) / table)      # one directory per raw table
    return write_parquet_partitions(df, base_dir=bronze_dir, filename=f"{table}.parquet")

@task
def stage_silver(bronze_paths: dict, cfg: dict):
    logger = get_run_logger()
    tables = {t: parse_raw_table(t, pd.read_parquet(p)) for t, p in bronze_paths.items()}
    records = derive_metrics(consolidate_orders(tables))
    records = annotate_segments(records, cfg["segments"]["unknown_weight_bucket"])
    failed = run_gx_suite("deliveries", records)
    if failed:
        raise QualityCheckError("deliveries", failed)
    logger.info(f"Consolidated {len(records)} delivered orders")
    silver_dir = str(Path(cfg["silver"]) / "deliveries")
    return write_parquet_partitions(records, base_dir=silver_dir, filename="deliveries.parquet")

@task
def stage_gold(silver_parquet: str, cfg: dict):
    logger = get_run_logger()
    records = pd.read_parquet(silver_parquet)
    attribution = attribute_responsibility(records)
    logger.info(f"Responsibility summary: {summarize_responsibility(records, attribution)}")

    msgs = []
    for domain, df in (("deliveries", records), ("responsibility", attribution)):
        gold_dir = str(Path(cfg["gold"]) / domain)
        gold_path = write_parquet_partitions(df, base_dir=gold_dir, filename=f"{domain}.parquet")
        msgs.append(upsert_duckdb(domain, gold_path, cfg))
    return msgs

@flow(name="delivery_consolidation")
def etl_core(config_path: str = "configs/config.yaml"):
    cfg = load_config(config_path)
    logger = get_run_logger()
    bronze = {t: stage_bronze.submit(t, cfg) for t in RAW_SCHEMA}
    bronze_paths = {t: f.result() for t, f in bronze.items()}
    logger.info(f"Bronze paths: {bronze_paths}")
    s = stage_silver.submit(bronze_paths, cfg)
    logger.info(f"Silver path for deliveries: {s.result()}")
    g = stage_gold.submit(s.result(), cfg)
    logger.info(f"Gold updated: {g.result()}")
    return layer_path(cfg, "gold", "deliveries")

if __name__ == "__main__":
    etl_core()
