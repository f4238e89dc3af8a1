import pandas as pd
import pytest

from delivery_etl.extract.csv_loader import parse_raw_table
from delivery_etl.transform.consolidate import (consolidate_orders, filter_deliverable_orders,
                                                rank_order_items)
from delivery_etl.utils.errors import (DanglingReferenceError, EmptyOrderError,
                                       MissingColumnsError, OrphanItemError)


def test_principal_item_is_most_expensive(make_tables, order_row, item_row, day_at):
    tables = make_tables(
        [order_row("o1", delivered=day_at(8))],
        [item_row("o1", 1, price=30.0, seller_id="s1", product_id="p1"),
         item_row("o1", 2, price=90.0, seller_id="s2", product_id="p2")],
    )
    rec = consolidate_orders(tables).iloc[0]
    assert rec["principal_seller_id"] == "s2"
    assert rec["principal_product_id"] == "p2"
    assert rec["seller_state"] == "MG"
    assert rec["product_weight"] == 12000.0


def test_price_tie_goes_to_earliest_deadline_regardless_of_row_order(make_tables, order_row,
                                                                       item_row, day_at):
    items = [item_row("o1", 1, price=100.0, deadline=day_at(3), seller_id="s1", product_id="p1"),
             item_row("o1", 2, price=100.0, deadline=day_at(1), seller_id="s2", product_id="p2")]
    for rows in (items, list(reversed(items))):
        tables = make_tables([order_row("o1", delivered=day_at(8))], rows)
        rec = consolidate_orders(tables).iloc[0]
        assert rec["principal_seller_id"] == "s2"
        assert rec["earliest_shipping_deadline"] == day_at(1)


def test_full_tie_resolved_by_item_sequence(make_tables, item_row, day_at):
    items = [item_row("o1", 2, price=10.0, deadline=day_at(2), product_id="p2"),
             item_row("o1", 1, price=10.0, deadline=day_at(2), product_id="p1")]
    ranked = rank_order_items(make_tables([], items)["order_items"])
    first = ranked[ranked["item_rank"] == 1].iloc[0]
    assert first["order_item_id"] == 1
    assert ranked["item_rank"].tolist() == [1, 2]


def test_item_aggregates(make_tables, order_row, item_row, day_at):
    tables = make_tables(
        [order_row("o1", delivered=day_at(8)), order_row("o2", customer_id="c2", delivered=day_at(5))],
        [item_row("o1", 1, price=30.0, freight=5.5, deadline=day_at(4)),
         item_row("o1", 2, price=20.0, freight=4.5, deadline=day_at(2)),
         item_row("o1", 3, price=25.0, freight=0.0, deadline=day_at(6)),
         item_row("o2", 1, price=99.9, freight=12.0)],
    )
    records = consolidate_orders(tables).set_index("order_id")
    assert records.loc["o1", "total_item_price"] == pytest.approx(75.0)
    assert records.loc["o1", "total_freight"] == pytest.approx(10.0)
    assert records.loc["o1", "item_count"] == 3
    assert records.loc["o1", "earliest_shipping_deadline"] == day_at(2)
    assert records.loc["o2", "item_count"] == 1
    assert records.loc["o2", "customer_state"] == "BA"


def test_only_delivered_orders_with_delivery_timestamp_survive(make_tables, order_row, item_row,
                                                               day_at):
    orders = [
        order_row("ok", delivered=day_at(8)),
        order_row("canceled", status="canceled", delivered=day_at(8)),
        order_row("shipped", status="shipped"),
        order_row("no_ts", status="delivered"),
    ]
    items = [item_row(o["order_id"]) for o in orders]
    tables = make_tables(orders, items)

    records = consolidate_orders(tables)
    assert records["order_id"].tolist() == ["ok"]

    _, excluded = filter_deliverable_orders(tables["orders"])
    reasons = dict(zip(excluded["order_id"], excluded["exclusion_reason"]))
    assert reasons == {
        "canceled": "status_not_delivered",
        "shipped": "status_not_delivered",
        "no_ts": "missing_delivery_timestamp",
    }


def test_unparsable_delivery_timestamp_counts_as_missing(make_tables, order_row, item_row):
    tables = make_tables([order_row("o1", delivered="not-a-date")], [item_row("o1")])
    assert consolidate_orders(tables).empty


def test_orphan_item_aborts(make_tables, order_row, item_row, day_at):
    tables = make_tables([order_row("o1", delivered=day_at(8))],
                         [item_row("o1"), item_row("ghost")])
    with pytest.raises(OrphanItemError) as exc:
        consolidate_orders(tables)
    assert exc.value.order_ids == ["ghost"]


def test_delivered_order_without_items_aborts(make_tables, order_row, item_row, day_at):
    tables = make_tables([order_row("o1", delivered=day_at(8)), order_row("o2", delivered=day_at(8))],
                         [item_row("o1")])
    with pytest.raises(EmptyOrderError):
        consolidate_orders(tables)


def test_excluded_order_without_items_is_not_an_error(make_tables, order_row, item_row, day_at):
    tables = make_tables([order_row("o1", delivered=day_at(8)), order_row("o2", status="canceled")],
                         [item_row("o1")])
    assert consolidate_orders(tables)["order_id"].tolist() == ["o1"]


def test_unknown_customer_aborts(make_tables, order_row, item_row, day_at):
    tables = make_tables([order_row("o1", customer_id="nobody", delivered=day_at(8))],
                         [item_row("o1")])
    with pytest.raises(DanglingReferenceError):
        consolidate_orders(tables)


def test_missing_weight_stays_absent(make_tables, order_row, item_row, day_at):
    tables = make_tables([order_row("o1", delivered=day_at(8))], [item_row("o1", product_id="p9")])
    assert pd.isna(consolidate_orders(tables).loc[0, "product_weight"])

    tables["products"] = tables["products"].iloc[0:0]
    assert pd.isna(consolidate_orders(tables).loc[0, "product_weight"])


def test_missing_required_column_is_reported():
    with pytest.raises(MissingColumnsError) as exc:
        parse_raw_table("order_items", pd.DataFrame({"order_id": ["o1"], "price": [1.0]}))
    assert "seller_id" in exc.value.missing
