"""
Trigger plays for a single customer or a whole segment and record the
action in the activity log.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
from retention.data.repository import ActivityLog, CustomerRepository, PlayCatalog
from retention.segments.classifier import SegmentThresholds, classify

logger = logging.getLogger(__name__)


def trigger_play(
    log: ActivityLog,
    catalog: PlayCatalog,
    play_id: str,
    customer_id: Optional[str] = None,
    customer_count: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Record a play sent to one customer, or to ``customer_count`` customers.

    Raises
    ------
    NotFoundError
        Unknown ``play_id``.
    ValueError
        Neither a customer id nor a count was given.
    """
    if customer_id is None and customer_count is None:
        raise ValueError("Either customer_id or customer_count is required.")

    play = catalog.get(play_id)
    if customer_count:
        message = f"{play.name} triggered for {customer_count} customers"
    else:
        message = f"{play.name} triggered for customer {customer_id}"

    event = log.add(
        "play_triggered",
        message,
        {"customer_id": customer_id, "play_id": play_id, "customer_count": customer_count},
    )
    logger.info(message)
    return {"message": "Play triggered successfully", "event_id": event.id}


def trigger_segment_play(
    log: ActivityLog,
    catalog: PlayCatalog,
    repository: CustomerRepository,
    segment_id: str,
    play_id: str,
    estimated_count: Optional[int] = None,
    thresholds: Optional[SegmentThresholds] = None,
) -> Dict[str, Any]:
    """
    Resolve ``segment_id`` against the full population and trigger the play
    for every member.

    Raises
    ------
    NotFoundError
        Unknown ``play_id``.
    UnknownSegmentError
        Unknown ``segment_id``.
    """
    play = catalog.get(play_id)
    result = classify(repository.all(), segment_id, thresholds)

    message = f"{play.name} triggered for segment {segment_id} ({result.count} customers)"
    event = log.add(
        "play_triggered",
        message,
        {
            "segment_id": segment_id,
            "play_id": play_id,
            "customer_count": result.count,
            "customer_ids": [c.id for c in result.customers],
        },
    )
    if estimated_count is not None and estimated_count != result.count:
        logger.warning(
            "Segment %s: estimated %d customers but %d matched",
            segment_id, estimated_count, result.count,
        )
    logger.info(message)

    return {
        "message": "Segment play triggered successfully",
        "segment_id": segment_id,
        "play_id": play_id,
        "actual_customer_count": result.count,
        "estimated_customer_count": estimated_count,
        "event_id": event.id,
    }
