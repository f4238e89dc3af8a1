import pandas as pd


def calendar_days(end: pd.Series, start: pd.Series) -> pd.Series:
    # time of day is dropped before subtracting; missing timestamps give <NA>
    return (end.dt.normalize() - start.dt.normalize()).dt.days.astype("Int64")


def derive_metrics(records: pd.DataFrame) -> pd.DataFrame:
    df = records.copy()
    df["sla_days"] = calendar_days(df["estimated_delivery_ts"], df["purchase_ts"])
    df["lead_time_days"] = calendar_days(df["customer_delivery_ts"], df["purchase_ts"])
    df["delay_days"] = calendar_days(df["customer_delivery_ts"], df["estimated_delivery_ts"])
    return df
