import pandas as pd

UNKNOWN = "unknown"

MACRO_REGIONS = {
    "north": ["AC", "AP", "AM", "PA", "RO", "RR", "TO"],
    "northeast": ["AL", "BA", "CE", "MA", "PB", "PE", "PI", "RN", "SE"],
    "central_west": ["GO", "MT", "MS", "DF"],
    "southeast": ["ES", "MG", "RJ", "SP"],
    "south": ["PR", "RS", "SC"],
}
STATE_TO_REGION = {state: region for region, states in MACRO_REGIONS.items() for state in states}

# upper bounds in grams, inclusive
WEIGHT_BANDS = [(1000, "light"), (5000, "medium"), (20000, "heavy")]
DELAY_BANDS = [(3, "minor"), (7, "moderate")]


def macro_region(state) -> str:
    if not isinstance(state, str):
        return UNKNOWN
    return STATE_TO_REGION.get(state.strip().upper(), UNKNOWN)


def weight_band(weight_g, unknown_weight_bucket: bool = False):
    if weight_g is None or pd.isna(weight_g):
        return UNKNOWN if unknown_weight_bucket else None
    for upper, label in WEIGHT_BANDS:
        if weight_g <= upper:
            return label
    return "very_heavy"


def delay_band(lead_time_days, sla_days):
    if pd.isna(lead_time_days) or pd.isna(sla_days):
        return None
    late_by = lead_time_days - sla_days
    if late_by <= 0:
        return "on_time"
    for upper, label in DELAY_BANDS:
        if late_by <= upper:
            return label
    return "critical"


def annotate_segments(records: pd.DataFrame, unknown_weight_bucket: bool = False) -> pd.DataFrame:
    df = records.copy()
    df["weight_band"] = [weight_band(w, unknown_weight_bucket) for w in df["product_weight"]]
    df["delay_band"] = [delay_band(lead, sla)
                        for lead, sla in zip(df["lead_time_days"], df["sla_days"])]
    df["customer_region"] = df["customer_state"].map(macro_region)
    df["seller_region"] = df["seller_state"].map(macro_region)
    for col in ("weight_band", "delay_band"):
        df[col] = df[col].astype("string")
    return df
