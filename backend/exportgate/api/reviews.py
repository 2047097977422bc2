"""
Manual Review API Router: list, submit, assign and decide review items.
"""

from fastapi import APIRouter, Depends, Query

from exportgate.api.deps import get_review_queue
from exportgate.models import ManualReviewItem
from exportgate.schemas.schemas import ReviewAssign, ReviewDecision, ReviewItemOut, ReviewSubmit
from exportgate.services.review_queue import ReviewQueue

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


def _to_out(item: ManualReviewItem) -> ReviewItemOut:
    return ReviewItemOut(
        queue_id=item.queue_id,
        detection_result_id=item.detection_result_id,
        shipment_id=item.shipment_id,
        priority=item.priority,
        review_reason=item.review_reason,
        status=item.status,
        assigned_to=item.assigned_to,
        decision=item.decision,
        review_notes=item.review_notes,
        created_at=item.created_at,
        completed_at=item.completed_at,
    )


@router.get("", response_model=list[ReviewItemOut])
async def list_pending_reviews(
    shipment_id: str | None = Query(None, description="Filter by shipment"),
    limit: int = Query(50, ge=1, le=200),
    queue: ReviewQueue = Depends(get_review_queue),
) -> list[ReviewItemOut]:
    return [_to_out(i) for i in await queue.list_pending(shipment_id, limit)]


@router.post("", response_model=ReviewItemOut, status_code=201)
async def submit_for_review(
    body: ReviewSubmit,
    queue: ReviewQueue = Depends(get_review_queue),
) -> ReviewItemOut:
    item = await queue.submit_for_review(body.result_id, body.reason, body.requested_by, body.priority)
    return _to_out(item)


@router.put("/{queue_id}/assign", response_model=ReviewItemOut)
async def assign_review(
    queue_id: str,
    body: ReviewAssign,
    queue: ReviewQueue = Depends(get_review_queue),
) -> ReviewItemOut:
    return _to_out(await queue.assign(queue_id, body.reviewer))


@router.put("/{queue_id}/decision", response_model=ReviewItemOut)
async def decide_review(
    queue_id: str,
    body: ReviewDecision,
    queue: ReviewQueue = Depends(get_review_queue),
) -> ReviewItemOut:
    return _to_out(await queue.complete(queue_id, body.decision, body.reviewer, body.notes))
