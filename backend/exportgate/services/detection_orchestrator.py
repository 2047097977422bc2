"""
Detection Orchestrator

Runs every product item of a shipment through the detection engine,
persists one DetectionResult per item, queues low-confidence and
indeterminate items for manual review, and aggregates shipment-level
statistics.

`has_controlled_items` is the detection-time signal (true as soon as one
strategic item exists, regardless of permits). Whether the shipment is
currently cleared to export is decided only by the compliance gate; once
the rows are stored the gate re-derives their export_blocked / state, so a
shipment whose permits were uploaded before detection is not left blocked.

Each item is evaluated and stored in its own savepoint: a failure is
reported in `item_errors` and the rest of the batch continues. Re-running
detection supersedes the previous rows (kept for audit) and closes their
open reviews; an item that fails to store keeps its previous row current.

Shipment-level compliance score at detection time:
  no strategic items                → 100
  avg strategic confidence ≥ 90     → 70 - 30 = 40
  avg strategic confidence ≥ 70     → 70 - 20 = 50
  below                             → 70 - 10 = 60
"""

import logging
from dataclasses import dataclass, field
from uuid import uuid4

from sqlalchemy import select, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from exportgate.clock import utcnow
from exportgate.errors import ShipmentNotFound
from exportgate.layers.base import ProductItem
from exportgate.models import DetectionResult, ManualReviewItem, Shipment
from exportgate.permits.registry import PermitRegistry
from exportgate.services.audit_service import AuditService
from exportgate.services.catalog import Catalog, CatalogService
from exportgate.services.compliance_gate import ComplianceGate
from exportgate.services.detection_engine import INDETERMINATE, DetectionEngine, ItemDetection
from exportgate.services.review_queue import INCOMPLETE_REASON, LOW_CONFIDENCE_REASON, ReviewQueue

logger = logging.getLogger(__name__)


def detection_compliance_score(strategic_confidences: list[int]) -> int:
    if not strategic_confidences:
        return 100
    average = sum(strategic_confidences) / len(strategic_confidences)
    if average >= 90:
        return 70 - 30
    elif average >= 70:
        return 70 - 20
    return 70 - 10


@dataclass
class ShipmentDetectionSummary:
    shipment_id: str
    total_items: int
    strategic_items_found: int
    has_controlled_items: bool
    required_permits: list[str]
    compliance_score: int
    indeterminate_items: int
    ruleset_version: str
    persisted: bool
    export_permitted: bool | None = None
    results: list[dict] = field(default_factory=list)
    compliance_actions: list[dict] = field(default_factory=list)
    item_errors: list[dict] = field(default_factory=list)

    @property
    def export_blocked(self) -> bool:
        return self.has_controlled_items

    def to_dict(self) -> dict:
        return {
            "shipment_id": self.shipment_id,
            "total_items": self.total_items,
            "strategic_items_found": self.strategic_items_found,
            "has_controlled_items": self.has_controlled_items,
            "export_blocked": self.export_blocked,
            "required_permits": self.required_permits,
            "compliance_score": self.compliance_score,
            "indeterminate_items": self.indeterminate_items,
            "ruleset_version": self.ruleset_version,
            "persisted": self.persisted,
            "export_permitted": self.export_permitted,
            "results": self.results,
            "compliance_actions": self.compliance_actions,
            "item_errors": self.item_errors,
        }


class DetectionOrchestrator:
    def __init__(
        self,
        session: AsyncSession,
        engine: DetectionEngine,
        registry: PermitRegistry | None = None,
        gate: ComplianceGate | None = None,
    ):
        self.session = session
        self.engine = engine
        self.registry = registry
        self.gate = gate
        self.reviews = ReviewQueue(session)
        self.audit = AuditService(session)

    async def detect(self, shipment_id: str, items: list[ProductItem]) -> ShipmentDetectionSummary:
        catalog = await CatalogService(self.session).load()
        shipment = await self.session.execute(
            select(Shipment.id).where(Shipment.shipment_id == shipment_id)
        )
        persist = shipment.scalar_one_or_none() is not None

        item_errors: list[dict] = []
        previous: list[tuple[str, int]] = []
        if persist:
            previous = list((await self.session.execute(
                select(DetectionResult.result_id, DetectionResult.item_index).where(
                    DetectionResult.shipment_id == shipment_id,
                    DetectionResult.superseded_at.is_(None),
                )
            )).tuples())
        else:
            logger.warning("Shipment %s not found; detection results will not be persisted", shipment_id)

        results: list[dict] = []
        detections: list[ItemDetection] = []
        stored: dict[str, DetectionResult] = {}
        # Indexes without a new row keep their previous result current
        unstored: set[int] = set()
        for index, item in enumerate(items):
            try:
                detection = await self.engine.evaluate_item(item, catalog)
            except Exception as e:
                logger.error("Detection failed for %s item %d: %s", shipment_id, index, e)
                item_errors.append({"item_index": index, "error": f"Detection failed: {e}"})
                unstored.add(index)
                continue
            detections.append(detection)

            if not persist:
                item_errors.append({
                    "item_index": index,
                    "error": ShipmentNotFound(shipment_id).message,
                })
                results.append(self._result_dict(index, detection, None, None))
                continue

            try:
                async with self.session.begin_nested():
                    row = await self._persist(shipment_id, index, detection)
                    queue_id = await self._maybe_enqueue(row, detection)
            except SQLAlchemyError as e:
                logger.error("Failed to store detection result for %s item %d: %s", shipment_id, index, e)
                item_errors.append({"item_index": index, "error": f"Could not store detection result: {e}"})
                unstored.add(index)
                results.append(self._result_dict(index, detection, None, None))
                continue
            stored[row.result_id] = row
            results.append(self._result_dict(index, detection, row.result_id, queue_id))

        export_permitted = None
        if persist:
            await self._supersede([rid for rid, index in previous if index not in unstored])
            if self.gate is not None:
                state = await self.gate.refresh_item_states(shipment_id)
                export_permitted = state.export_permitted
                for result in results:
                    row = stored.get(result["result_id"])
                    if row is not None:
                        result["export_blocked"] = row.export_blocked

        strategic = [d for d in detections if d.is_strategic]
        summary = ShipmentDetectionSummary(
            shipment_id=shipment_id,
            total_items=len(items),
            strategic_items_found=len(strategic),
            has_controlled_items=bool(strategic),
            required_permits=list(dict.fromkeys(p for d in strategic for p in d.required_permits)),
            compliance_score=detection_compliance_score([d.final_confidence for d in strategic]),
            indeterminate_items=sum(1 for d in detections if d.determination == INDETERMINATE),
            ruleset_version=self.engine.ruleset.version,
            persisted=persist and len(stored) == len(items),
            export_permitted=export_permitted,
            results=results,
            compliance_actions=[self._compliance_action(d, catalog) for d in strategic],
            item_errors=item_errors,
        )

        await self.audit.log_detection(shipment_id, {
            "total_items": summary.total_items,
            "strategic_items_found": summary.strategic_items_found,
            "indeterminate_items": summary.indeterminate_items,
            "required_permits": summary.required_permits,
            "compliance_score": summary.compliance_score,
            "export_permitted": summary.export_permitted,
            "ruleset_version": summary.ruleset_version,
            "persisted": summary.persisted,
            "item_errors": len(summary.item_errors),
        })

        logger.info(
            "Detection for %s: %d/%d strategic, %d indeterminate, %d errors, permits=%s",
            shipment_id, summary.strategic_items_found, summary.total_items,
            summary.indeterminate_items, len(item_errors), summary.required_permits,
        )
        return summary

    async def _supersede(self, result_ids: list[str]) -> None:
        """Retire rows from an earlier run; they stay for audit but stop counting."""
        if not result_ids:
            return
        await self.session.execute(
            update(DetectionResult)
            .where(DetectionResult.result_id.in_(result_ids))
            .values(superseded_at=utcnow())
        )
        closed = await self.reviews.close_superseded(result_ids)
        logger.info("Superseded %d detection results (%d open reviews closed)", len(result_ids), closed)

    async def _persist(self, shipment_id: str, index: int, detection: ItemDetection) -> DetectionResult:
        row = self._build_row(shipment_id, index, detection)
        self.session.add(row)
        await self.session.flush()
        return row

    def _build_row(self, shipment_id: str, index: int, detection: ItemDetection) -> DetectionResult:
        item = detection.item
        if detection.is_strategic:
            state = "DETECTED"
        elif detection.determination == INDETERMINATE:
            state = "PENDING_REVIEW"
        else:
            state = "NOT_CONTROLLED"

        return DetectionResult(
            result_id=str(uuid4()),
            shipment_id=shipment_id,
            item_index=index,
            item_description=item.description,
            hs_code=item.hs_code,
            quantity=item.quantity,
            detection_layers=detection.layers_dict(),
            final_confidence=detection.final_confidence,
            is_strategic=detection.is_strategic,
            determination=detection.determination,
            strategic_codes=detection.strategic_codes,
            required_permits=detection.required_permits,
            export_blocked=detection.export_blocked,
            compliance_state=state,
            manual_review_required=detection.manual_review_required,
            ruleset_version=detection.ruleset_version,
        )

    async def _maybe_enqueue(self, row: DetectionResult, detection: ItemDetection) -> str | None:
        if not detection.manual_review_required:
            return None
        reason = INCOMPLETE_REASON if detection.determination == INDETERMINATE else LOW_CONFIDENCE_REASON
        review = await self.reviews.enqueue(row, reason=reason)
        return review.queue_id

    def _compliance_action(self, detection: ItemDetection, catalog: Catalog) -> dict:
        deadlines: dict[str, dict] = {}
        for code in detection.strategic_codes:
            entry = catalog.get(code)
            if entry is not None:
                for permit, info in entry.permit_deadlines.items():
                    deadlines.setdefault(permit, info)
        if self.registry is not None:
            for permit in detection.required_permits:
                if permit not in deadlines and permit in self.registry:
                    ptype = self.registry.get(permit)
                    deadlines[permit] = {"deadline_days": ptype.deadline_days, "authority": ptype.authority}
        return {
            "action": "UPLOAD_PERMITS",
            "item_description": detection.item.description,
            "required_permits": detection.required_permits,
            "deadlines": {p: deadlines[p] for p in detection.required_permits if p in deadlines},
        }

    @staticmethod
    def _result_dict(index: int, d: ItemDetection, result_id: str | None, queue_id: str | None) -> dict:
        return {
            "result_id": result_id,
            "item_index": index,
            "item_description": d.item.description,
            "hs_code": d.item.hs_code,
            "final_confidence": d.final_confidence,
            "is_strategic": d.is_strategic,
            "determination": d.determination,
            "strategic_codes": d.strategic_codes,
            "required_permits": d.required_permits,
            "export_blocked": d.export_blocked,
            "manual_review_required": d.manual_review_required,
            "review_queue_id": queue_id,
            "failed_layers": d.failed_layers,
            "detection_layers": d.layers_dict(),
        }

    async def get_detection_status(self, shipment_id: str) -> dict:
        """Shipment detection aggregate recomputed from the stored per-item rows."""
        shipment = await self.session.execute(
            select(Shipment.id).where(Shipment.shipment_id == shipment_id)
        )
        if shipment.scalar_one_or_none() is None:
            raise ShipmentNotFound(shipment_id)

        rows = list((await self.session.execute(
            select(DetectionResult)
            .where(
                DetectionResult.shipment_id == shipment_id,
                DetectionResult.superseded_at.is_(None),
            )
            .order_by(DetectionResult.item_index, DetectionResult.id)
        )).scalars())
        strategic = [r for r in rows if r.is_strategic]
        pending = await self.session.execute(
            select(func.count())
            .select_from(ManualReviewItem)
            .where(
                ManualReviewItem.shipment_id == shipment_id,
                ManualReviewItem.status.in_(("pending", "in_review")),
            )
        )

        average = (
            round(sum(r.final_confidence for r in strategic) / len(strategic), 2) if strategic else 0
        )
        return {
            "shipment_id": shipment_id,
            "total_items": len(rows),
            "strategic_items": len(strategic),
            "blocked_items": sum(1 for r in rows if r.export_blocked),
            "indeterminate_items": sum(1 for r in rows if r.determination == INDETERMINATE),
            "pending_reviews": pending.scalar() or 0,
            "average_confidence": average,
            "has_controlled_items": bool(strategic),
            "required_permits": list(dict.fromkeys(
                p for r in strategic if r.compliance_state != "OVERRIDDEN" for p in (r.required_permits or [])
            )),
            "items": [
                {
                    "result_id": r.result_id,
                    "item_description": r.item_description,
                    "final_confidence": r.final_confidence,
                    "determination": r.determination,
                    "strategic_codes": r.strategic_codes,
                    "export_blocked": r.export_blocked,
                    "compliance_state": r.compliance_state,
                    "manual_review_status": r.manual_review_status,
                }
                for r in rows
            ],
        }
