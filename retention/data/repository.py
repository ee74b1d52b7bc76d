"""
In-memory repositories for customers, plays, experiments and the activity
log. Storage is handed in through the constructor; nothing here is a
module-level singleton.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
from configs.config import (
    ACTIVITY_LOG_MAX_EVENTS,
    DEFAULT_EXPERIMENT_SEGMENT_SIZE,
    DEFAULT_PAGE_SIZE,
)
from retention.data.models import (
    ActivityEvent,
    Customer,
    Experiment,
    NotFoundError,
    Play,
    TimelineEvent,
    customers_to_frame,
)
from retention.evaluation.experiment_simulator import ExperimentSimulator, complete_experiment

logger = logging.getLogger(__name__)

Range = Tuple[Optional[float], Optional[float]]


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CustomerQuery:
    """
    Filters for ``CustomerRepository.list``. Unset filters match everything;
    ranges are inclusive and either bound may be None.
    """

    search: Optional[str] = None
    risk_bands: Optional[Sequence[str]] = None
    ltv_tiers: Optional[Sequence[str]] = None
    customer_age: Optional[Range] = None
    engagement_score: Optional[Range] = None
    loyalty_score: Optional[Range] = None
    days_since_last_activity: Optional[Range] = None


@dataclass
class CustomerPage:
    customers: List[Customer]
    total: int
    has_more: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customers": [c.to_dict() for c in self.customers],
            "total": self.total,
            "has_more": self.has_more,
        }


class CustomerRepository:
    """Read-only view over a fixed list of scored customers and their timelines."""

    _RANGE_COLUMNS = ("customer_age", "engagement_score", "loyalty_score", "days_since_last_activity")

    def __init__(
        self,
        customers: Iterable[Customer],
        events: Iterable[TimelineEvent] = (),
    ) -> None:
        self._customers: List[Customer] = list(customers)
        self._by_id: Dict[str, Customer] = {c.id: c for c in self._customers}
        self._frame = customers_to_frame(self._customers)
        self._events: Dict[str, List[TimelineEvent]] = {}
        for event in events:
            if event.customer_id not in self._by_id:
                raise NotFoundError(
                    f"Timeline event {event.id!r} refers to unknown customer {event.customer_id!r}"
                )
            self._events.setdefault(event.customer_id, []).append(event)

    def __len__(self) -> int:
        return len(self._customers)

    def all(self) -> List[Customer]:
        return list(self._customers)

    def get(self, customer_id: str) -> Customer:
        try:
            return self._by_id[customer_id]
        except KeyError:
            raise NotFoundError(f"Customer {customer_id!r} not found") from None

    def timeline(self, customer_id: str) -> List[TimelineEvent]:
        """Every event recorded for the customer, newest first; ties keep insertion order."""
        self.get(customer_id)
        events = self._events.get(customer_id, [])
        return sorted(events, key=lambda e: e.timestamp, reverse=True)

    def _mask(self, query: CustomerQuery) -> pd.Series:
        df = self._frame
        mask = pd.Series(True, index=df.index)

        if query.search:
            needle = query.search.lower()
            mask &= (
                df["name"].str.lower().str.contains(needle, regex=False)
                | df["email"].str.lower().str.contains(needle, regex=False)
                | df["id"].str.lower().str.contains(needle, regex=False)
            )
        if query.risk_bands:
            mask &= df["risk_band"].isin(list(query.risk_bands))
        if query.ltv_tiers:
            mask &= df["ltv_tier"].isin(list(query.ltv_tiers))

        for col in self._RANGE_COLUMNS:
            bounds = getattr(query, col)
            if bounds is None:
                continue
            low, high = bounds
            if low is not None:
                mask &= df[col] >= low
            if high is not None:
                mask &= df[col] <= high
        return mask

    def list(
        self,
        query: Optional[CustomerQuery] = None,
        offset: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> CustomerPage:
        """
        Filtered page of customers in storage order.

        Parameters
        ----------
        offset : int
            Number of matching records to skip.
        limit : int
            Maximum records returned; must be >= 1.
        """
        if offset < 0:
            raise ValueError("offset must be >= 0.")
        if limit < 1:
            raise ValueError("limit must be >= 1.")

        query = query or CustomerQuery()
        if len(self._frame) == 0:
            return CustomerPage(customers=[], total=0, has_more=False)

        matched = self._frame.index[self._mask(query)]
        total = len(matched)
        page = [self._customers[i] for i in matched[offset:offset + limit]]

        logger.debug("Customer query %s — %d matches, returning %d", query, total, len(page))
        return CustomerPage(customers=page, total=total, has_more=offset + limit < total)

    def page(self, page: int = 1, limit: int = DEFAULT_PAGE_SIZE,
             query: Optional[CustomerQuery] = None) -> CustomerPage:
        """1-based page-number variant of ``list``."""
        if page < 1:
            raise ValueError("page must be >= 1.")
        return self.list(query, offset=(page - 1) * limit, limit=limit)


class PlayCatalog:
    def __init__(self, plays: Iterable[Play]) -> None:
        self._plays: List[Play] = list(plays)

    def list(self) -> List[Play]:
        return list(self._plays)

    def get(self, play_id: str) -> Play:
        for play in self._plays:
            if play.id == play_id:
                return play
        raise NotFoundError(f"Play {play_id!r} not found")

    def create(self, **fields: Any) -> Play:
        fields.pop("id", None)
        play = Play(id=_new_id("play"), **fields)
        self._plays.append(play)
        logger.info("Created play %s (%s)", play.id, play.name)
        return play

    def update(self, play_id: str, **changes: Any) -> Play:
        changes.pop("id", None)
        for i, play in enumerate(self._plays):
            if play.id == play_id:
                self._plays[i] = replace(play, **changes)
                return self._plays[i]
        raise NotFoundError(f"Play {play_id!r} not found")


class ExperimentStore:
    def __init__(self, experiments: Iterable[Experiment]) -> None:
        self._experiments: List[Experiment] = list(experiments)

    def list(self) -> List[Experiment]:
        return list(self._experiments)

    def get(self, experiment_id: str) -> Experiment:
        for exp in self._experiments:
            if exp.id == experiment_id:
                return exp
        raise NotFoundError(f"Experiment {experiment_id!r} not found")

    def create(self, **fields: Any) -> Experiment:
        fields.pop("id", None)
        fields.setdefault("start_at", _now())
        experiment = Experiment(id=_new_id("exp"), **fields)
        self._experiments.append(experiment)
        logger.info("Created experiment %s for play %s", experiment.id, experiment.treatment_play_id)
        return experiment

    def complete(
        self,
        experiment_id: str,
        catalog: PlayCatalog,
        simulator: ExperimentSimulator,
        segment_size: int = DEFAULT_EXPERIMENT_SEGMENT_SIZE,
    ) -> Experiment:
        """Simulate results for a Running experiment and store the completed record."""
        experiment = self.get(experiment_id)
        play = catalog.get(experiment.treatment_play_id)
        completed = complete_experiment(experiment, play, simulator, segment_size)
        idx = self._experiments.index(experiment)
        self._experiments[idx] = completed
        return completed


class ActivityLog:
    """Newest-first audit trail, capped at ``max_events`` entries."""

    def __init__(self, max_events: int = ACTIVITY_LOG_MAX_EVENTS,
                 events: Optional[Iterable[ActivityEvent]] = None) -> None:
        if max_events < 1:
            raise ValueError("max_events must be >= 1.")
        self.max_events = max_events
        self._events: List[ActivityEvent] = list(events or [])[:max_events]

    def __len__(self) -> int:
        return len(self._events)

    def list(self) -> List[ActivityEvent]:
        return list(self._events)

    def add(self, type: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> ActivityEvent:
        event = ActivityEvent(
            id=_new_id("activity"),
            type=type,
            message=message,
            occurred_at=_now(),
            metadata=dict(metadata or {}),
        )
        self._events.insert(0, event)
        del self._events[self.max_events:]
        return event
