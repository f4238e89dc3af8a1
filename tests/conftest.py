import pandas as pd
import pytest

from delivery_etl.extract.csv_loader import parse_raw_table

DAY0 = pd.Timestamp("2018-03-01")


def day(n: int, hour: int = 12, minute: int = 0) -> pd.Timestamp:
    return DAY0 + pd.Timedelta(days=n, hours=hour, minutes=minute)


def order(order_id, customer_id="c1", status="delivered", purchase=None, carrier=None,
          delivered=None, estimated=None):
    return {
        "order_id": order_id,
        "customer_id": customer_id,
        "order_status": status,
        "order_purchase_timestamp": purchase if purchase is not None else day(0, 9),
        "order_approved_at": day(0, 10),
        "order_delivered_carrier_date": carrier if carrier is not None else day(2),
        "order_delivered_customer_date": delivered,
        "order_estimated_delivery_date": estimated if estimated is not None else day(10, 0),
    }


def item(order_id, order_item_id=1, price=50.0, freight=10.0, deadline=None,
         seller_id="s1", product_id="p1"):
    return {
        "order_id": order_id,
        "order_item_id": order_item_id,
        "product_id": product_id,
        "seller_id": seller_id,
        "shipping_limit_date": deadline if deadline is not None else day(3),
        "price": price,
        "freight_value": freight,
    }


@pytest.fixture
def day_at():
    return day


@pytest.fixture
def order_row():
    return order


@pytest.fixture
def item_row():
    return item


@pytest.fixture
def make_tables():
    """Raw tables parsed the same way the bronze stage parses CSV input."""
    def _make(orders, items, sellers=None, customers=None, products=None):
        sellers = sellers if sellers is not None else [
            {"seller_id": "s1", "seller_state": "SP"},
            {"seller_id": "s2", "seller_state": "MG"},
        ]
        customers = customers if customers is not None else [
            {"customer_id": "c1", "customer_state": "RJ"},
            {"customer_id": "c2", "customer_state": "BA"},
        ]
        products = products if products is not None else [
            {"product_id": "p1", "product_weight_g": 800.0},
            {"product_id": "p2", "product_weight_g": 12000.0},
        ]
        raw = {
            "orders": pd.DataFrame(orders, columns=list(order("x").keys())),
            "order_items": pd.DataFrame(items, columns=list(item("x").keys())),
            "sellers": pd.DataFrame(sellers, columns=["seller_id", "seller_state"]),
            "customers": pd.DataFrame(customers, columns=["customer_id", "customer_state"]),
            "products": pd.DataFrame(products, columns=["product_id", "product_weight_g"]),
        }
        return {name: parse_raw_table(name, df) for name, df in raw.items()}
    return _make


@pytest.fixture
def delay_records():
    """Already-derived records for the outlier classifier."""
    def _make(rows):
        df = pd.DataFrame(rows, columns=["order_id", "customer_state", "sla_days", "delay_days"])
        df["lead_time_days"] = df["sla_days"] + df["delay_days"]
        return df
    return _make
