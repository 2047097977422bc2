"""
Manual Review Queue

Holding area for detections that need human adjudication: low-confidence
strategic hits and items whose detection was incomplete because a layer
failed. A reviewer either confirms the detection or overrides it; an
override moves the item to the terminal OVERRIDDEN state and the shipment's
compliance is rechecked.
"""

import logging
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from exportgate.clock import utcnow
from exportgate.errors import DetectionResultNotFound, InvalidReviewTransition, ReviewItemNotFound
from exportgate.models import DetectionResult, ManualReviewItem
from exportgate.services.audit_service import AuditService

if TYPE_CHECKING:
    from exportgate.services.compliance_gate import ComplianceGate

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_REASON = "low confidence strategic detection"
INCOMPLETE_REASON = "detection incomplete: layer failure"

DECISIONS = {"confirmed", "overridden"}
# Set by the system, never by a reviewer
SUPERSEDED = "superseded"

# Valid status transitions
VALID_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"in_review", "completed"},
    "in_review": {"completed", "pending"},
    "completed": set(),  # terminal
}


class ReviewQueue:
    def __init__(self, session: AsyncSession, gate: "ComplianceGate | None" = None):
        self.session = session
        self.gate = gate
        self.audit = AuditService(session)

    async def enqueue(
        self,
        result: DetectionResult,
        reason: str = LOW_CONFIDENCE_REASON,
        priority: str = "normal",
        actor: str = "system",
    ) -> ManualReviewItem:
        item = ManualReviewItem(
            queue_id=f"REV-{uuid4().hex[:8].upper()}",
            detection_result_id=result.result_id,
            shipment_id=result.shipment_id,
            priority=priority,
            review_reason=reason,
            status="pending",
        )
        self.session.add(item)
        result.manual_review_required = True
        result.manual_review_status = "pending"
        await self.session.flush()

        await self.audit.log_review_request(
            result.shipment_id, item.queue_id, result.result_id, reason, actor=actor,
        )
        return item

    async def submit_for_review(
        self, result_id: str, reason: str, requested_by: str, priority: str = "normal",
    ) -> ManualReviewItem:
        """Explicitly send a stored detection result to manual review."""
        result = await self.session.execute(
            select(DetectionResult).where(DetectionResult.result_id == result_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise DetectionResultNotFound(result_id)
        return await self.enqueue(row, reason=reason, priority=priority, actor=requested_by)

    async def list_pending(self, shipment_id: str | None = None, limit: int = 50) -> list[ManualReviewItem]:
        query = (
            select(ManualReviewItem)
            .where(ManualReviewItem.status.in_(("pending", "in_review")))
            .order_by(ManualReviewItem.id.asc())
            .limit(limit)
        )
        if shipment_id:
            query = query.where(ManualReviewItem.shipment_id == shipment_id)
        result = await self.session.execute(query)
        return list(result.scalars())

    async def get(self, queue_id: str) -> ManualReviewItem:
        result = await self.session.execute(
            select(ManualReviewItem).where(ManualReviewItem.queue_id == queue_id)
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise ReviewItemNotFound(queue_id)
        return item

    def _transition(self, item: ManualReviewItem, new_status: str) -> None:
        allowed = VALID_TRANSITIONS.get(item.status, set())
        if new_status not in allowed:
            raise InvalidReviewTransition(
                f"Invalid transition: {item.status} -> {new_status}. "
                f"Allowed: {sorted(allowed) if allowed else 'none (terminal)'}",
                queue_id=item.queue_id,
            )
        item.status = new_status

    async def assign(self, queue_id: str, reviewer: str) -> ManualReviewItem:
        item = await self.get(queue_id)
        self._transition(item, "in_review")
        item.assigned_to = reviewer
        item.assigned_at = utcnow()
        await self.session.flush()
        return item

    async def complete(
        self, queue_id: str, decision: str, reviewer: str, notes: str | None = None,
    ) -> ManualReviewItem:
        """
        Record the reviewer's decision.

        confirmed  → detection stands as recorded
        overridden → item moves to terminal OVERRIDDEN and no longer blocks export
        """
        if decision not in DECISIONS:
            raise InvalidReviewTransition(
                f"Invalid decision: {decision}. Valid: {sorted(DECISIONS)}", queue_id=queue_id,
            )
        item = await self.get(queue_id)
        self._transition(item, "completed")

        now = utcnow()
        item.decision = decision
        item.review_notes = notes
        item.completed_at = now
        if item.assigned_to is None:
            item.assigned_to = reviewer

        row = (await self.session.execute(
            select(DetectionResult).where(DetectionResult.result_id == item.detection_result_id)
        )).scalar_one()
        row.manual_review_status = "completed"
        row.reviewed_by = reviewer
        row.reviewed_at = now
        if decision == "overridden":
            row.compliance_state = "OVERRIDDEN"
            row.export_blocked = False
        await self.session.flush()

        await self.audit.log_review_decision(item.shipment_id, queue_id, decision, reviewer, notes)
        logger.info("Review %s completed by %s: %s", queue_id, reviewer, decision)

        if self.gate is not None:
            await self.gate.check_compliance(item.shipment_id, actor=reviewer)
        return item

    async def close_superseded(self, result_ids: list[str]) -> int:
        """Close open reviews whose detection result was replaced by a newer run."""
        if not result_ids:
            return 0
        result = await self.session.execute(
            select(ManualReviewItem).where(
                ManualReviewItem.detection_result_id.in_(result_ids),
                ManualReviewItem.status.in_(("pending", "in_review")),
            )
        )
        now = utcnow()
        closed = 0
        for item in result.scalars():
            self._transition(item, "completed")
            item.decision = SUPERSEDED
            item.review_notes = "detection re-run"
            item.completed_at = now
            closed += 1
        await self.session.flush()
        return closed

    async def get_queue_stats(self) -> dict:
        result = await self.session.execute(
            select(ManualReviewItem.status, func.count()).group_by(ManualReviewItem.status)
        )
        counts = {status: count for status, count in result}
        return {s: counts.get(s, 0) for s in VALID_TRANSITIONS}
