"""
Synthetic customer population, customer timelines and the default play /
experiment catalog.

Profiles follow a fixed mix (new, churned, high value, price sensitive,
seasonal, regular) so every segment has members in a population of a few
hundred customers. All randomness flows from one numpy Generator.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import numpy as np

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
from configs.config import N_SEED_CUSTOMERS, RANDOM_STATE, SEED_SCORE_JITTER
from retention.data.models import (
    EMAIL_EVENT_TYPES,
    SESSION_EVENT_TYPES,
    TICKET_SENTIMENTS,
    Customer,
    EmailEngagement,
    EmailEvent,
    Experiment,
    ExperimentResults,
    LineItem,
    Location,
    Play,
    Review,
    SessionEvent,
    SupportTicket,
    TimelineEvent,
    Transaction,
)
from retention.scoring.risk import score_customer, utc_now

logger = logging.getLogger(__name__)

FIRST_NAMES = [
    "Alex", "Jordan", "Taylor", "Morgan", "Casey", "Riley", "Avery", "Quinn",
    "Blake", "Cameron", "Drew", "Emery", "Finley", "Hayden", "Jamie", "Kendall",
    "Logan", "Parker", "Peyton", "Reese", "Sage", "Skyler", "Sydney", "Tatum",
]

LAST_NAMES = [
    "Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis",
    "Rodriguez", "Martinez", "Hernandez", "Lopez", "Gonzalez", "Wilson", "Anderson", "Thomas",
    "Taylor", "Moore", "Jackson", "Martin", "Lee", "Perez", "Thompson", "White",
]

# (city, state)
CITIES = [
    ("New York", "NY"), ("Los Angeles", "CA"), ("Chicago", "IL"), ("Houston", "TX"),
    ("Phoenix", "AZ"), ("Philadelphia", "PA"), ("San Antonio", "TX"), ("San Diego", "CA"),
    ("Dallas", "TX"), ("San Jose", "CA"), ("Austin", "TX"), ("Jacksonville", "FL"),
    ("Columbus", "OH"), ("Charlotte", "NC"), ("Seattle", "WA"), ("Denver", "CO"),
    ("Boston", "MA"), ("Nashville", "TN"), ("Detroit", "MI"),
]

EMAIL_DOMAINS = ["gmail.com", "yahoo.com", "hotmail.com", "outlook.com"]

TAGS = [
    "high-value", "frequent-buyer", "price-sensitive", "tech-enthusiast", "fashion-forward",
    "fitness-focused", "home-decor", "gift-giver", "early-adopter", "bargain-hunter",
]

# profile -> (share, first purchase days ago, last purchase days ago, orders,
#             revenue, margin, ltv multiplier); ranges are inclusive/low-high
CUSTOMER_PROFILES: Dict[str, Dict] = {
    "new": dict(share=0.10, first=(1, 30), last=(1, 15), orders=(1, 3),
                revenue=(100, 800), margin=(0.3, 0.5), ltv_mult=(2.0, 4.0)),
    "churned": dict(share=0.10, first=(90, 365), last=(60, 120), orders=(3, 15),
                    revenue=(500, 3000), margin=(0.2, 0.4), ltv_mult=(1.5, 2.5)),
    "high_value": dict(share=0.10, first=(60, 300), last=(1, 30), orders=(8, 25),
                       revenue=(2000, 8000), margin=(0.4, 0.6), ltv_mult=(1.8, 3.0)),
    "price_sensitive": dict(share=0.10, first=(30, 180), last=(1, 45), orders=(2, 8),
                            revenue=(50, 500), margin=(0.1, 0.3), ltv_mult=(1.2, 2.0)),
    "seasonal": dict(share=0.10, first=(120, 400), last=(60, 120), orders=(2, 6),
                     revenue=(200, 1500), margin=(0.2, 0.4), ltv_mult=(1.5, 2.5)),
    "regular": dict(share=0.50, first=(30, 180), last=(1, 60), orders=(1, 15),
                    revenue=(100, 2000), margin=(0.2, 0.5), ltv_mult=(1.2, 2.8)),
}

PRICE_SENSITIVITY_BY_PROFILE = {
    "new": "high",
    "churned": "high",
    "high_value": "high",
    "price_sensitive": "high",
    "seasonal": "medium",
    # regular customers split 40/60 between medium and low
    "regular": None,
}


def _int_between(rng: np.random.Generator, bounds) -> int:
    low, high = bounds
    return int(rng.integers(low, high + 1))


def _float_between(rng: np.random.Generator, bounds) -> float:
    low, high = bounds
    return float(rng.uniform(low, high))


def generate_customer(
    customer_id: str,
    rng: np.random.Generator,
    as_of: Optional[datetime] = None,
    profile: Optional[str] = None,
    score_jitter: float = SEED_SCORE_JITTER,
) -> Customer:
    """
    Generate and score one synthetic customer.

    Parameters
    ----------
    customer_id : str
    rng : np.random.Generator
        Source of every random draw, including the loyalty/engagement noise.
    as_of : datetime, optional
        Reference instant; purchase dates are placed before it.
    profile : str, optional
        Key of ``CUSTOMER_PROFILES``; drawn by share when omitted.
    score_jitter : float
        Noise amplitude for loyalty / engagement scores.
    """
    as_of = as_of or utc_now()
    if profile is None:
        names = list(CUSTOMER_PROFILES)
        shares = np.array([CUSTOMER_PROFILES[n]["share"] for n in names])
        profile = str(rng.choice(names, p=shares / shares.sum()))
    params = CUSTOMER_PROFILES[profile]

    first = rng.choice(FIRST_NAMES)
    last = rng.choice(LAST_NAMES)
    city, state = CITIES[int(rng.integers(len(CITIES)))]

    first_purchase_at = as_of - timedelta(days=_int_between(rng, params["first"]))
    last_purchase_at: Optional[datetime] = as_of - timedelta(days=_int_between(rng, params["last"]))
    if profile == "regular" and rng.random() < 0.1:
        last_purchase_at = None
    elif last_purchase_at < first_purchase_at:
        last_purchase_at = first_purchase_at

    total_revenue = _float_between(rng, params["revenue"])
    sensitivity = PRICE_SENSITIVITY_BY_PROFILE[profile]
    if sensitivity is None:
        sensitivity = "medium" if rng.random() < 0.4 else "low"
    engagement = EmailEngagement(
        open_rate=float(rng.uniform(0.1, 0.8)),
        click_rate=float(rng.uniform(0.02, 0.3)),
        unsubscribed=bool(rng.random() < 0.05),
        last_open_at=as_of - timedelta(days=_int_between(rng, (1, 30))) if rng.random() > 0.3 else None,
        last_click_at=as_of - timedelta(days=_int_between(rng, (1, 14))) if rng.random() > 0.7 else None,
    )
    tags = [str(t) for t in rng.choice(TAGS, size=_int_between(rng, (1, 4)), replace=False)]

    customer = Customer(
        id=customer_id,
        name=f"{first} {last}",
        email=f"{first.lower()}.{last.lower()}@{rng.choice(EMAIL_DOMAINS)}",
        first_purchase_at=first_purchase_at,
        last_purchase_at=last_purchase_at,
        total_orders=_int_between(rng, params["orders"]),
        total_revenue=total_revenue,
        margin_rate=_float_between(rng, params["margin"]),
        ltv=total_revenue * _float_between(rng, params["ltv_mult"]),
        email_engagement=engagement,
        location=Location(city=city, state=state),
        tags=tags,
        price_sensitivity=sensitivity,
        seasonal_pattern=profile == "seasonal",
    )
    return score_customer(customer, as_of=as_of, jitter=score_jitter, rng=rng)


def generate_customers(
    n_customers: int = N_SEED_CUSTOMERS,
    random_state: int = RANDOM_STATE,
    as_of: Optional[datetime] = None,
    score_jitter: float = SEED_SCORE_JITTER,
) -> List[Customer]:
    """Reproducible population: same ``random_state`` and ``as_of`` give the same records."""
    if n_customers < 0:
        raise ValueError("n_customers must be >= 0.")
    rng = np.random.default_rng(random_state)
    as_of = as_of or utc_now()
    width = max(3, len(str(max(n_customers - 1, 0))))

    customers = [
        generate_customer(f"cust-{i:0{width}d}", rng, as_of=as_of, score_jitter=score_jitter)
        for i in range(n_customers)
    ]

    if customers:
        logger.info(
            "Generated synthetic population: %d customers, mean risk=%.1f, high-risk share=%.2f",
            n_customers,
            float(np.mean([c.risk_score for c in customers])),
            float(np.mean([c.risk_band == "High" for c in customers])),
        )
    return customers


DEFAULT_PLAYS: List[Play] = [
    Play(
        id="play-001",
        name="20% Discount Code",
        channel="Email",
        kind="Discount",
        eligibility="risk >= 50 AND ltvTier in [Bronze,Silver,Gold,VIP]",
        frequency_cap_per_30d=1,
        est_uplift_pct=15,
        est_cost_pct_of_rev=20,
        status="Active",
        description="Send personalized discount code to at-risk customers",
        copy="We miss you! Here's 20% off your next order. Use code SAVE20",
    ),
    Play(
        id="play-002",
        name="Loyalty Points Bonus",
        channel="Email",
        kind="Loyalty",
        eligibility="risk >= 40 AND ltvTier in [Silver,Gold,VIP]",
        frequency_cap_per_30d=2,
        est_uplift_pct=12,
        est_cost_pct_of_rev=8,
        status="Active",
        description="Award bonus loyalty points to encourage return visits",
        copy="Earn 2x loyalty points on your next purchase!",
    ),
    Play(
        id="play-003",
        name="Personalized Bundle",
        channel="On-site",
        kind="Bundle",
        eligibility="risk >= 60 AND ltvTier in [Gold,VIP]",
        frequency_cap_per_30d=1,
        est_uplift_pct=25,
        est_cost_pct_of_rev=15,
        status="Active",
        description="Show personalized product bundles on site",
        copy="Complete your look with these recommended items",
    ),
    Play(
        id="play-004",
        name="Content Nurture Series",
        channel="Email",
        kind="Content",
        eligibility="risk >= 30 AND emailEngagement.openRate >= 0.2",
        frequency_cap_per_30d=3,
        est_uplift_pct=8,
        est_cost_pct_of_rev=2,
        status="Active",
        description="Send educational content to re-engage customers",
        copy="Tips and tricks to get the most out of your purchase",
    ),
    Play(
        id="play-005",
        name="CS Outreach Call",
        channel="CS",
        kind="Service",
        eligibility="risk >= 70 AND ltvTier in [Gold,VIP]",
        frequency_cap_per_30d=1,
        est_uplift_pct=35,
        est_cost_pct_of_rev=5,
        status="Active",
        description="Proactive customer service outreach",
        copy="We'd love to hear about your experience and help with any questions",
    ),
]


def default_experiments(as_of: Optional[datetime] = None) -> List[Experiment]:
    as_of = as_of or utc_now()
    return [
        Experiment(
            id="exp-001",
            name="Discount vs Loyalty Points",
            segment="Medium Risk Customers",
            treatment_play_id="play-001",
            control_pct=50,
            start_at=as_of - timedelta(days=14),
            end_at=as_of + timedelta(days=14),
            status="Running",
        ),
        Experiment(
            id="exp-002",
            name="Bundle Recommendation Test",
            segment="High Value Customers",
            treatment_play_id="play-003",
            control_pct=30,
            start_at=as_of - timedelta(days=30),
            end_at=as_of - timedelta(days=7),
            status="Completed",
            results=ExperimentResults(
                incremental_revenue=12500,
                winner="Treatment",
                p_value=0.023,
                uplift_pct=18.5,
            ),
        ),
    ]


# ----------------------------------------------------------------------
# customer timeline
# ----------------------------------------------------------------------

# (sku, name, category, list price)
PRODUCTS = [
    ("PROD-001", "Wireless Headphones", "Electronics", 199.0),
    ("PROD-002", "Smart Watch", "Electronics", 299.0),
    ("PROD-003", "Coffee Maker", "Appliances", 89.0),
    ("PROD-004", "Yoga Mat", "Fitness", 45.0),
    ("PROD-005", "Bluetooth Speaker", "Electronics", 79.0),
    ("PROD-006", "Running Shoes", "Fashion", 120.0),
    ("PROD-007", "Laptop Stand", "Office", 65.0),
    ("PROD-008", "Water Bottle", "Fitness", 25.0),
    ("PROD-009", "Phone Case", "Accessories", 35.0),
    ("PROD-010", "Desk Lamp", "Office", 55.0),
]

CAMPAIGNS = [
    "Welcome Series", "Product Recommendations", "Abandoned Cart", "Win-back",
    "Seasonal Sale", "New Arrivals", "Customer Feedback", "Loyalty Program",
    "Flash Sale", "Newsletter",
]

SESSION_PAGES = ["/products", "/cart", "/checkout", "/home", "/search"]

TICKET_SUBJECTS = [
    "Product not working as expected", "Shipping delay inquiry", "Return request",
    "Billing question", "Technical support needed", "Product recommendation request",
]

REVIEW_TEXTS = [
    "Great product, highly recommend!", "Good value for money", "Could be better quality",
    "Exactly what I was looking for", "Fast shipping and good packaging", "Not as described",
    "Love this product!", "Average quality, decent price",
]

# event kind -> inclusive count range, probability that the customer has any
TIMELINE_COUNTS = {
    "transaction": ((2, 8), 1.0),
    "session": ((5, 20), 1.0),
    "email": ((3, 15), 1.0),
    "support": ((1, 3), 0.3),
    "review": ((1, 5), 0.4),
}


def _timeline_count(rng: np.random.Generator, kind: str) -> int:
    bounds, probability = TIMELINE_COUNTS[kind]
    if probability < 1.0 and rng.random() >= probability:
        return 0
    return _int_between(rng, bounds)


def _days_before(rng: np.random.Generator, as_of: datetime, max_days: int) -> datetime:
    return as_of - timedelta(days=_int_between(rng, (0, max_days)))


def _transaction(customer: Customer, index: int, rng: np.random.Generator,
                 as_of: datetime) -> Transaction:
    purchased_at = customer.first_purchase_at + timedelta(days=_int_between(rng, (0, 180)))
    picks = rng.choice(len(PRODUCTS), size=_int_between(rng, (1, 4)), replace=False)
    items = []
    for pick in picks:
        sku, name, category, price = PRODUCTS[int(pick)]
        items.append(LineItem(
            sku=sku,
            name=name,
            category=category,
            qty=_int_between(rng, (1, 3)),
            price=round(price * rng.uniform(0.8, 1.2), 2),
        ))
    subtotal = sum(item.price * item.qty for item in items)
    discount = subtotal * rng.uniform(0.05, 0.25) if rng.random() < 0.3 else 0.0
    refund = subtotal * rng.uniform(0.1, 0.5) if rng.random() < 0.05 else 0.0
    return Transaction(
        id=f"txn-{customer.id}-{index:02d}",
        customer_id=customer.id,
        order_id=f"ord-{customer.id}-{index:02d}",
        purchased_at=min(purchased_at, as_of),
        items=items,
        subtotal=round(subtotal, 2),
        discount=round(discount, 2),
        refund=round(refund, 2),
    )


def _session(customer: Customer, index: int, rng: np.random.Generator,
             as_of: datetime) -> SessionEvent:
    metadata = {
        "page": str(rng.choice(SESSION_PAGES)),
        "duration": _int_between(rng, (10, 300)),
    }
    if rng.random() < 0.5:
        metadata["product_id"] = PRODUCTS[int(rng.integers(len(PRODUCTS)))][0]
    return SessionEvent(
        id=f"ses-{customer.id}-{index:02d}",
        customer_id=customer.id,
        occurred_at=_days_before(rng, as_of, 30),
        type=str(rng.choice(SESSION_EVENT_TYPES)),
        metadata=metadata,
    )


def _email(customer: Customer, index: int, rng: np.random.Generator,
           as_of: datetime) -> EmailEvent:
    return EmailEvent(
        id=f"eml-{customer.id}-{index:02d}",
        customer_id=customer.id,
        occurred_at=_days_before(rng, as_of, 30),
        type=str(rng.choice(EMAIL_EVENT_TYPES)),
        campaign=str(rng.choice(CAMPAIGNS)),
    )


def _ticket(customer: Customer, index: int, rng: np.random.Generator,
            as_of: datetime) -> SupportTicket:
    return SupportTicket(
        id=f"tkt-{customer.id}-{index:02d}",
        customer_id=customer.id,
        created_at=_days_before(rng, as_of, 60),
        status="closed" if rng.random() > 0.3 else "open",
        sentiment=str(rng.choice(TICKET_SENTIMENTS)),
        subject=str(rng.choice(TICKET_SUBJECTS)),
    )


def _review(customer: Customer, index: int, rng: np.random.Generator,
            as_of: datetime) -> Review:
    return Review(
        id=f"rev-{customer.id}-{index:02d}",
        customer_id=customer.id,
        created_at=_days_before(rng, as_of, 90),
        rating=_int_between(rng, (1, 5)),
        product=PRODUCTS[int(rng.integers(len(PRODUCTS)))][1],
        text=str(rng.choice(REVIEW_TEXTS)),
    )


_TIMELINE_BUILDERS = {
    "transaction": _transaction,
    "session": _session,
    "email": _email,
    "support": _ticket,
    "review": _review,
}


def generate_timeline(
    customer: Customer,
    rng: np.random.Generator,
    as_of: Optional[datetime] = None,
) -> List[TimelineEvent]:
    """
    Generate purchase, browsing, e-mail, support and review events for one customer.

    Events are returned grouped by kind; ordering newest first is left to
    ``CustomerRepository.timeline``. No event is dated after ``as_of``.
    """
    as_of = as_of or utc_now()
    events: List[TimelineEvent] = []
    for kind, build in _TIMELINE_BUILDERS.items():
        for index in range(_timeline_count(rng, kind)):
            events.append(build(customer, index, rng, as_of))
    return events


def generate_timelines(
    customers: List[Customer],
    random_state: int = RANDOM_STATE,
    as_of: Optional[datetime] = None,
) -> List[TimelineEvent]:
    """Timeline events for every customer, drawn from a Generator separate from the population's."""
    rng = np.random.default_rng(random_state)
    as_of = as_of or utc_now()
    events: List[TimelineEvent] = []
    for customer in customers:
        events.extend(generate_timeline(customer, rng, as_of=as_of))
    logger.info("Generated %d timeline events for %d customers", len(events), len(customers))
    return events
