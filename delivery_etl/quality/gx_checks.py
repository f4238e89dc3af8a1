import great_expectations as gx
import great_expectations.expectations as gxe
import pandas as pd


def delivery_expectations() -> list:
    return [
        gxe.ExpectColumnValuesToNotBeNull(column="order_id"),
        gxe.ExpectColumnValuesToBeUnique(column="order_id"),
        gxe.ExpectColumnValuesToNotBeNull(column="customer_delivery_ts"),
        gxe.ExpectColumnValuesToNotBeNull(column="customer_state"),
        gxe.ExpectColumnValuesToBeBetween(column="item_count", min_value=1),
        gxe.ExpectColumnValuesToBeBetween(column="total_item_price", min_value=0),
        gxe.ExpectColumnValuesToBeBetween(column="total_freight", min_value=0),
        # delay_days - (lead_time_days - sla_days) must be exactly zero
        gxe.ExpectColumnValuesToBeBetween(column="delay_identity_gap", min_value=0, max_value=0),
    ]


def _with_identity_gap(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    gap = out["delay_days"] - (out["lead_time_days"] - out["sla_days"])
    out["delay_identity_gap"] = gap.astype("float64")
    return out


def run_gx_suite(domain: str, df: pd.DataFrame) -> list:
    """Validate consolidated deliveries; returns the failed expectation types."""
    context = gx.get_context(mode="ephemeral")
    source = context.data_sources.add_pandas(name=f"{domain}_source")
    asset = source.add_dataframe_asset(name=domain)
    batch_definition = asset.add_batch_definition_whole_dataframe(f"{domain}_batch")
    batch = batch_definition.get_batch(batch_parameters={"dataframe": _with_identity_gap(df)})

    suite = context.suites.add(gx.ExpectationSuite(name=f"{domain}_suite"))
    for expectation in delivery_expectations():
        suite.add_expectation(expectation)

    result = batch.validate(suite)
    failed = []
    for res in result.results:
        if not res.success:
            cfg = res.expectation_config
            failed.append(f"{cfg.type}({cfg.kwargs.get('column')})")
    return failed
