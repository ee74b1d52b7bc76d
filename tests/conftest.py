"""
Shared fixtures: a fixed reference instant and a customer factory whose
defaults give a low-risk, Gold-tier record.
"""
import sys
import os
from datetime import datetime, timedelta, timezone

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from retention.data.models import Customer, EmailEngagement, Location

AS_OF = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def days_ago(n):
    return AS_OF - timedelta(days=n)


def build_customer(
    open_rate=0.5,
    click_rate=0.1,
    unsubscribed=False,
    **overrides,
):
    fields = dict(
        id="cust-001",
        name="Alex Smith",
        email="alex.smith@gmail.com",
        first_purchase_at=days_ago(200),
        last_purchase_at=days_ago(10),
        total_orders=10,
        total_revenue=2500.0,
        margin_rate=0.4,
        ltv=3000.0,
        email_engagement=EmailEngagement(
            open_rate=open_rate, click_rate=click_rate, unsubscribed=unsubscribed
        ),
        location=Location(city="Boston", state="MA"),
    )
    fields.update(overrides)
    return Customer(**fields)


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def make_customer():
    return build_customer
