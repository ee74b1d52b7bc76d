"""
Record types shared by scoring, segmentation, experiments and the
in-memory repositories.

All records are plain dataclasses whose ``to_dict`` output is JSON
serialisable (ISO-8601 datetimes, enums as strings).
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import numpy as np
import pandas as pd

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
from configs.config import (
    LTV_TIER_GOLD,
    LTV_TIER_SILVER,
    LTV_TIER_VIP,
    RISK_BAND_HIGH,
    RISK_BAND_MEDIUM,
)

RISK_BANDS = ("Low", "Medium", "High")
LTV_TIERS = ("Bronze", "Silver", "Gold", "VIP")
PRICE_SENSITIVITIES = ("low", "medium", "high")
CUSTOMER_STATUSES = ("active", "churned", "dormant")

PLAY_CHANNELS = ("Email", "SMS", "On-site", "CS")
PLAY_KINDS = ("Discount", "Loyalty", "Content", "Bundle", "Service")
PLAY_STATUSES = ("Draft", "Active", "Paused")

EXPERIMENT_STATUSES = ("Running", "Completed", "Paused")
EXPERIMENT_WINNERS = ("Treatment", "Control", "Inconclusive")

ACTIVITY_TYPES = (
    "risk_detected",
    "play_triggered",
    "experiment_started",
    "customer_engaged",
    "revenue_impact",
)


class InvalidCustomerError(ValueError):
    """A customer record cannot be scored as given."""


class NotFoundError(KeyError):
    """No record with the requested id."""


def get_risk_band(score: float) -> str:
    if score >= RISK_BAND_HIGH:
        return "High"
    if score >= RISK_BAND_MEDIUM:
        return "Medium"
    return "Low"


def get_ltv_tier(ltv: float) -> str:
    if ltv >= LTV_TIER_VIP:
        return "VIP"
    if ltv >= LTV_TIER_GOLD:
        return "Gold"
    if ltv >= LTV_TIER_SILVER:
        return "Silver"
    return "Bronze"


def _clip(value: float, low: float, high: float) -> float:
    return float(np.clip(value, low, high))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    # accepts a trailing "Z" on every supported interpreter
    return pd.Timestamp(value).to_pydatetime()


def _check_choice(name: str, value: str, choices: tuple, error=ValueError) -> None:
    if value not in choices:
        raise error(f"{name} must be one of {choices}, got {value!r}.")


@dataclass(frozen=True)
class EmailEngagement:
    open_rate: float
    click_rate: float
    unsubscribed: bool = False
    last_open_at: Optional[datetime] = None
    last_click_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "open_rate", _clip(self.open_rate, 0.0, 1.0))
        object.__setattr__(self, "click_rate", _clip(self.click_rate, 0.0, 1.0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "open_rate": self.open_rate,
            "click_rate": self.click_rate,
            "unsubscribed": self.unsubscribed,
            "last_open_at": _iso(self.last_open_at),
            "last_click_at": _iso(self.last_click_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmailEngagement":
        return cls(
            open_rate=float(data["open_rate"]),
            click_rate=float(data["click_rate"]),
            unsubscribed=bool(data.get("unsubscribed", False)),
            last_open_at=_parse_dt(data.get("last_open_at")),
            last_click_at=_parse_dt(data.get("last_click_at")),
        )


@dataclass(frozen=True)
class Location:
    city: str
    state: str
    country: str = "US"

    def to_dict(self) -> Dict[str, str]:
        return {"city": self.city, "state": self.state, "country": self.country}


@dataclass(frozen=True)
class Customer:
    """
    Snapshot of one customer with transactional summary and derived scores.

    ``risk_band`` and ``ltv_tier`` are computed from ``risk_score`` and
    ``ltv`` rather than stored, so they always agree with the thresholds.
    Percentage-like fields are clamped on construction.
    """

    id: str
    name: str
    email: str
    first_purchase_at: datetime
    last_purchase_at: Optional[datetime]
    total_orders: int
    total_revenue: float
    margin_rate: float
    ltv: float
    email_engagement: EmailEngagement
    location: Location
    risk_score: int = 0
    tags: List[str] = field(default_factory=list)
    loyalty_score: int = 0
    price_sensitivity: str = "medium"
    customer_age: int = 0
    seasonal_pattern: bool = False
    status: str = "active"
    engagement_score: int = 0
    days_since_last_activity: int = 0
    avatar_url: Optional[str] = None

    def __post_init__(self) -> None:
        if self.total_orders < 0:
            raise InvalidCustomerError(
                f"Customer {self.id}: total_orders must be >= 0, got {self.total_orders}."
            )
        _check_choice("price_sensitivity", self.price_sensitivity,
                      PRICE_SENSITIVITIES, InvalidCustomerError)
        _check_choice("status", self.status, CUSTOMER_STATUSES, InvalidCustomerError)

        object.__setattr__(self, "margin_rate", _clip(self.margin_rate, 0.0, 1.0))
        object.__setattr__(self, "risk_score", int(_clip(self.risk_score, 0, 100)))
        object.__setattr__(self, "loyalty_score", int(_clip(self.loyalty_score, 0, 100)))
        object.__setattr__(self, "engagement_score", int(_clip(self.engagement_score, 0, 100)))
        object.__setattr__(self, "tags", list(self.tags))

    @property
    def risk_band(self) -> str:
        return get_risk_band(self.risk_score)

    @property
    def ltv_tier(self) -> str:
        return get_ltv_tier(self.ltv)

    @property
    def average_order_value(self) -> float:
        if self.total_orders < 1:
            raise InvalidCustomerError(
                f"Customer {self.id}: average order value needs at least one order."
            )
        return self.total_revenue / self.total_orders

    def evolve(self, **changes: Any) -> "Customer":
        """Return a copy with ``changes`` applied; ``self`` is left as is."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "avatar_url": self.avatar_url,
            "first_purchase_at": _iso(self.first_purchase_at),
            "last_purchase_at": _iso(self.last_purchase_at),
            "total_orders": self.total_orders,
            "total_revenue": round(self.total_revenue, 2),
            "margin_rate": round(self.margin_rate, 4),
            "ltv": round(self.ltv, 2),
            "risk_score": self.risk_score,
            "risk_band": self.risk_band,
            "ltv_tier": self.ltv_tier,
            "email_engagement": self.email_engagement.to_dict(),
            "location": self.location.to_dict(),
            "tags": list(self.tags),
            "loyalty_score": self.loyalty_score,
            "price_sensitivity": self.price_sensitivity,
            "customer_age": self.customer_age,
            "seasonal_pattern": self.seasonal_pattern,
            "status": self.status,
            "engagement_score": self.engagement_score,
            "days_since_last_activity": self.days_since_last_activity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Customer":
        """Build a record from ``to_dict`` output; derived band/tier keys are ignored."""
        loc = data.get("location") or {}
        return cls(
            id=str(data["id"]),
            name=data["name"],
            email=data["email"],
            avatar_url=data.get("avatar_url"),
            first_purchase_at=_parse_dt(data["first_purchase_at"]),
            last_purchase_at=_parse_dt(data.get("last_purchase_at")),
            total_orders=int(data["total_orders"]),
            total_revenue=float(data["total_revenue"]),
            margin_rate=float(data.get("margin_rate", 0.0)),
            ltv=float(data["ltv"]),
            risk_score=int(data.get("risk_score", 0)),
            email_engagement=EmailEngagement.from_dict(data["email_engagement"]),
            location=Location(
                city=loc.get("city", ""),
                state=loc.get("state", ""),
                country=loc.get("country", "US"),
            ),
            tags=list(data.get("tags", [])),
            loyalty_score=int(data.get("loyalty_score", 0)),
            price_sensitivity=data.get("price_sensitivity", "medium"),
            customer_age=int(data.get("customer_age", 0)),
            seasonal_pattern=bool(data.get("seasonal_pattern", False)),
            status=data.get("status", "active"),
            engagement_score=int(data.get("engagement_score", 0)),
            days_since_last_activity=int(data.get("days_since_last_activity", 0)),
        )


@dataclass(frozen=True)
class Play:
    """Static retention campaign definition."""

    id: str
    name: str
    channel: str
    kind: str
    eligibility: str
    frequency_cap_per_30d: int
    est_uplift_pct: float
    est_cost_pct_of_rev: float
    status: str = "Draft"
    description: Optional[str] = None
    copy: Optional[str] = None

    def __post_init__(self) -> None:
        _check_choice("channel", self.channel, PLAY_CHANNELS)
        _check_choice("kind", self.kind, PLAY_KINDS)
        _check_choice("status", self.status, PLAY_STATUSES)
        if self.frequency_cap_per_30d < 0:
            raise ValueError("frequency_cap_per_30d must be >= 0.")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "channel": self.channel,
            "kind": self.kind,
            "eligibility": self.eligibility,
            "frequency_cap_per_30d": self.frequency_cap_per_30d,
            "est_uplift_pct": self.est_uplift_pct,
            "est_cost_pct_of_rev": self.est_cost_pct_of_rev,
            "status": self.status,
            "description": self.description,
            "copy": self.copy,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Play":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            channel=data["channel"],
            kind=data["kind"],
            eligibility=data.get("eligibility") or "",
            frequency_cap_per_30d=int(data["frequency_cap_per_30d"]),
            est_uplift_pct=float(data["est_uplift_pct"]),
            est_cost_pct_of_rev=float(data["est_cost_pct_of_rev"]),
            status=data.get("status", "Draft"),
            description=data.get("description"),
            copy=data.get("copy"),
        )


@dataclass(frozen=True)
class ExperimentResults:
    """Outcome of a (simulated) treatment-vs-control comparison."""

    incremental_revenue: float
    winner: str
    p_value: float
    uplift_pct: float

    def __post_init__(self) -> None:
        _check_choice("winner", self.winner, EXPERIMENT_WINNERS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "incremental_revenue": round(self.incremental_revenue, 2),
            "winner": self.winner,
            "p_value": round(self.p_value, 6),
            "uplift_pct": round(self.uplift_pct, 4),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExperimentResults":
        return cls(
            incremental_revenue=float(data["incremental_revenue"]),
            winner=data["winner"],
            p_value=float(data["p_value"]),
            uplift_pct=float(data["uplift_pct"]),
        )


@dataclass(frozen=True)
class Experiment:
    id: str
    name: str
    segment: str
    treatment_play_id: str
    control_pct: float
    start_at: datetime
    end_at: Optional[datetime] = None
    status: str = "Running"
    results: Optional[ExperimentResults] = None

    def __post_init__(self) -> None:
        _check_choice("status", self.status, EXPERIMENT_STATUSES)
        if not 0 <= self.control_pct <= 100:
            raise ValueError("control_pct must be in [0, 100].")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "segment": self.segment,
            "treatment_play_id": self.treatment_play_id,
            "control_pct": self.control_pct,
            "start_at": _iso(self.start_at),
            "end_at": _iso(self.end_at),
            "status": self.status,
            "results": self.results.to_dict() if self.results is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Experiment":
        results = data.get("results")
        return cls(
            id=str(data["id"]),
            name=data["name"],
            segment=data["segment"],
            treatment_play_id=data["treatment_play_id"],
            control_pct=float(data["control_pct"]),
            start_at=_parse_dt(data["start_at"]),
            end_at=_parse_dt(data.get("end_at")),
            status=data.get("status", "Running"),
            results=ExperimentResults.from_dict(results) if results is not None else None,
        )


@dataclass(frozen=True)
class ActivityEvent:
    id: str
    type: str
    message: str
    occurred_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _check_choice("type", self.type, ACTIVITY_TYPES)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "message": self.message,
            "occurred_at": _iso(self.occurred_at),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActivityEvent":
        return cls(
            id=str(data["id"]),
            type=data["type"],
            message=data["message"],
            occurred_at=_parse_dt(data["occurred_at"]),
            metadata=dict(data.get("metadata") or {}),
        )


# ----------------------------------------------------------------------
# customer timeline
# ----------------------------------------------------------------------

SESSION_EVENT_TYPES = (
    "page_view",
    "product_view",
    "add_to_cart",
    "checkout_start",
    "rage_click",
    "search",
)
EMAIL_EVENT_TYPES = ("delivered", "open", "click", "unsubscribe", "complaint")
TICKET_STATUSES = ("open", "closed")
TICKET_SENTIMENTS = ("negative", "neutral", "positive")


@dataclass(frozen=True)
class LineItem:
    sku: str
    name: str
    category: str
    qty: int
    price: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "qty": self.qty,
            "price": round(self.price, 2),
        }


@dataclass(frozen=True)
class Transaction:
    kind = "transaction"

    id: str
    customer_id: str
    order_id: str
    purchased_at: datetime
    items: List[LineItem]
    subtotal: float
    discount: float = 0.0
    refund: float = 0.0

    def __post_init__(self) -> None:
        if not self.items:
            raise ValueError(f"Transaction {self.id} has no items.")
        object.__setattr__(self, "items", list(self.items))

    @property
    def timestamp(self) -> datetime:
        return self.purchased_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "id": self.id,
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "purchased_at": _iso(self.purchased_at),
            "items": [item.to_dict() for item in self.items],
            "subtotal": round(self.subtotal, 2),
            "discount": round(self.discount, 2),
            "refund": round(self.refund, 2),
        }


@dataclass(frozen=True)
class SessionEvent:
    kind = "session"

    id: str
    customer_id: str
    occurred_at: datetime
    type: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _check_choice("type", self.type, SESSION_EVENT_TYPES)

    @property
    def timestamp(self) -> datetime:
        return self.occurred_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "id": self.id,
            "customer_id": self.customer_id,
            "occurred_at": _iso(self.occurred_at),
            "type": self.type,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class EmailEvent:
    kind = "email"

    id: str
    customer_id: str
    occurred_at: datetime
    type: str
    campaign: str

    def __post_init__(self) -> None:
        _check_choice("type", self.type, EMAIL_EVENT_TYPES)

    @property
    def timestamp(self) -> datetime:
        return self.occurred_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "id": self.id,
            "customer_id": self.customer_id,
            "occurred_at": _iso(self.occurred_at),
            "type": self.type,
            "campaign": self.campaign,
        }


@dataclass(frozen=True)
class SupportTicket:
    kind = "support"

    id: str
    customer_id: str
    created_at: datetime
    status: str
    sentiment: str
    subject: str

    def __post_init__(self) -> None:
        _check_choice("status", self.status, TICKET_STATUSES)
        _check_choice("sentiment", self.sentiment, TICKET_SENTIMENTS)

    @property
    def timestamp(self) -> datetime:
        return self.created_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "id": self.id,
            "customer_id": self.customer_id,
            "created_at": _iso(self.created_at),
            "status": self.status,
            "sentiment": self.sentiment,
            "subject": self.subject,
        }


@dataclass(frozen=True)
class Review:
    kind = "review"

    id: str
    customer_id: str
    created_at: datetime
    rating: int
    product: str
    text: str

    def __post_init__(self) -> None:
        if not 1 <= self.rating <= 5:
            raise ValueError(f"Review {self.id}: rating must be in [1, 5], got {self.rating}.")

    @property
    def timestamp(self) -> datetime:
        return self.created_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "id": self.id,
            "customer_id": self.customer_id,
            "created_at": _iso(self.created_at),
            "rating": self.rating,
            "product": self.product,
            "text": self.text,
        }


TimelineEvent = Union[Transaction, SessionEvent, EmailEvent, SupportTicket, Review]


def customers_to_frame(customers: List[Customer]) -> pd.DataFrame:
    """
    Flatten customer records into one row per customer.

    Derived ``risk_band`` / ``ltv_tier`` and the e-mail engagement rates are
    included as plain columns so population-wide filters can be vectorised.
    """
    columns = [
        "id", "name", "email", "first_purchase_at", "last_purchase_at",
        "total_orders", "total_revenue", "ltv", "risk_score", "risk_band",
        "ltv_tier", "open_rate", "click_rate", "unsubscribed", "loyalty_score",
        "price_sensitivity", "customer_age", "seasonal_pattern", "status",
        "engagement_score", "days_since_last_activity",
    ]
    rows = [
        {
            "id": c.id,
            "name": c.name,
            "email": c.email,
            "first_purchase_at": c.first_purchase_at,
            "last_purchase_at": c.last_purchase_at,
            "total_orders": c.total_orders,
            "total_revenue": c.total_revenue,
            "ltv": c.ltv,
            "risk_score": c.risk_score,
            "risk_band": c.risk_band,
            "ltv_tier": c.ltv_tier,
            "open_rate": c.email_engagement.open_rate,
            "click_rate": c.email_engagement.click_rate,
            "unsubscribed": c.email_engagement.unsubscribed,
            "loyalty_score": c.loyalty_score,
            "price_sensitivity": c.price_sensitivity,
            "customer_age": c.customer_age,
            "seasonal_pattern": c.seasonal_pattern,
            "status": c.status,
            "engagement_score": c.engagement_score,
            "days_since_last_activity": c.days_since_last_activity,
        }
        for c in customers
    ]
    return pd.DataFrame(rows, columns=columns)
