"""
Compliance Gate

Cross-references a shipment's strategic detection results against the
permit ledger and decides whether the shipment is currently cleared to
export.

  export_permitted  iff no strategic item has a missing permit
  compliance_score  = round(fully covered strategic items / strategic items × 100),
                      100 when there are no strategic items

Item states: DETECTED → BLOCKED (permits incomplete) → CLEARED (all permits
valid); CLEARED → BLOCKED again when a permit expires. OVERRIDDEN is terminal
and only set by a manual-review decision. Items whose detection was
indeterminate are reported separately and never counted as "not strategic".

Recomputation (`check_compliance`, `refresh_item_states`) is serialised per
shipment with an in-process lock plus a row lock on the shipment. Only the
current detection run counts; rows superseded by a re-detection are kept for
audit but ignored.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from exportgate.clock import utcnow
from exportgate.models import (
    AuditAction,
    DetectionResult,
    ExportValidationLog,
    ManualReviewItem,
    PermitRecord,
    Shipment,
)
from exportgate.middleware.metrics import compliance_checks_total
from exportgate.services.audit_service import AuditService
from exportgate.services.detection_engine import INDETERMINATE
from exportgate.services.permit_ledger import authoritative_permits

logger = logging.getLogger(__name__)

# Item compliance states
DETECTED = "DETECTED"
BLOCKED = "BLOCKED"
CLEARED = "CLEARED"
OVERRIDDEN = "OVERRIDDEN"
NOT_CONTROLLED = "NOT_CONTROLLED"
PENDING_REVIEW = "PENDING_REVIEW"


class ShipmentLocks:
    """
    Per-shipment asyncio locks for compliance recomputation.

    A shipment's lock exists only while a task holds or waits on it, so the
    registry stays as small as the set of shipments being recomputed.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, shipment_id: str):
        lock = self._locks.setdefault(shipment_id, asyncio.Lock())
        self._holders[shipment_id] = self._holders.get(shipment_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[shipment_id] -= 1
            if not self._holders[shipment_id]:
                del self._holders[shipment_id]
                del self._locks[shipment_id]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class ItemCompliance:
    result_id: str
    item_description: str
    required_permits: list[str]
    missing_permits: list[str] = field(default_factory=list)
    expired_permits: list[str] = field(default_factory=list)
    state: str = DETECTED

    @property
    def covered(self) -> bool:
        return not self.missing_permits

    def to_dict(self) -> dict:
        return {
            "result_id": self.result_id,
            "item_description": self.item_description,
            "required_permits": self.required_permits,
            "missing_permits": self.missing_permits,
            "expired_permits": self.expired_permits,
            "state": self.state,
        }


@dataclass
class ComplianceState:
    """Derived per-shipment compliance verdict; recomputed, never stored as its own row."""
    shipment_id: str
    export_permitted: bool
    compliance_score: int
    missing_permits: list[str] = field(default_factory=list)
    blocking_reasons: list[str] = field(default_factory=list)
    items: list[ItemCompliance] = field(default_factory=list)
    overridden_items: list[str] = field(default_factory=list)
    indeterminate_items: list[str] = field(default_factory=list)
    shipment_found: bool = True
    evaluated_at: datetime | None = None

    @property
    def strategic_items(self) -> int:
        return len(self.items)

    def to_dict(self) -> dict:
        return {
            "shipment_id": self.shipment_id,
            "shipment_found": self.shipment_found,
            "export_permitted": self.export_permitted,
            "compliance_score": self.compliance_score,
            "missing_permits": self.missing_permits,
            "blocking_reasons": self.blocking_reasons,
            "strategic_items": self.strategic_items,
            "items": [i.to_dict() for i in self.items],
            "overridden_items": self.overridden_items,
            "indeterminate_items": self.indeterminate_items,
            "requires_attention": bool(self.indeterminate_items),
            "evaluated_at": self.evaluated_at.isoformat() if self.evaluated_at else None,
        }


class ComplianceGate:
    """Export-permitted / blocked decisions for shipments."""

    def __init__(self, session: AsyncSession, locks: ShipmentLocks):
        self.session = session
        self.locks = locks
        self.audit = AuditService(session)

    async def evaluate(self, shipment_id: str, at: datetime | None = None) -> ComplianceState:
        """Compute the current compliance state without writing anything."""
        at = at or utcnow()
        shipment = await self.session.execute(
            select(Shipment.id).where(Shipment.shipment_id == shipment_id)
        )
        if shipment.scalar_one_or_none() is None:
            logger.warning("Compliance evaluated for unknown shipment %s", shipment_id)
            return ComplianceState(
                shipment_id=shipment_id,
                export_permitted=True,
                compliance_score=100,
                shipment_found=False,
                evaluated_at=at,
            )

        rows = await self._detection_results(shipment_id)
        permits = await authoritative_permits(self.session, shipment_id, at)
        expired_types = await self._expired_permit_types(shipment_id, at)

        items: list[ItemCompliance] = []
        overridden: list[str] = []
        indeterminate: list[str] = []
        for row in rows:
            if row.compliance_state == OVERRIDDEN:
                overridden.append(row.item_description)
                continue
            if row.determination == INDETERMINATE:
                indeterminate.append(row.item_description)
                continue
            if not row.is_strategic:
                continue

            required = list(row.required_permits or [])
            missing = [p for p in required if p not in permits]
            items.append(ItemCompliance(
                result_id=row.result_id,
                item_description=row.item_description,
                required_permits=required,
                missing_permits=missing,
                expired_permits=[p for p in missing if p in expired_types],
                state=CLEARED if not missing else BLOCKED,
            ))

        missing_all = list(dict.fromkeys(p for i in items for p in i.missing_permits))
        reasons = [
            f"{i.item_description} missing permits: "
            + ", ".join(f"{p} (EXPIRED)" if p in i.expired_permits else p for p in i.missing_permits)
            for i in items if not i.covered
        ]
        if items:
            score = round(sum(1 for i in items if i.covered) / len(items) * 100)
        else:
            score = 100

        return ComplianceState(
            shipment_id=shipment_id,
            export_permitted=not missing_all,
            compliance_score=score,
            missing_permits=missing_all,
            blocking_reasons=reasons,
            items=items,
            overridden_items=overridden,
            indeterminate_items=indeterminate,
            evaluated_at=at,
        )

    async def get_compliance_status(self, shipment_id: str) -> ComplianceState:
        return await self.evaluate(shipment_id)

    async def check_compliance(
        self,
        shipment_id: str,
        action: AuditAction = AuditAction.COMPLIANCE_CHECK,
        actor: str = "system",
        at: datetime | None = None,
    ) -> ComplianceState:
        """
        Recompute compliance and persist it: re-derive each strategic item's
        export_blocked / compliance_state, write one export-validation log row
        and one audit entry.
        """
        async with self.locks.hold(shipment_id):
            state = await self._recompute(shipment_id, at)
            if not state.shipment_found:
                compliance_checks_total.labels(result="shipment_not_found").inc()
                return state

            self.session.add(ExportValidationLog(
                shipment_id=shipment_id,
                trigger=action.value,
                validation_result=state.to_dict(),
                export_permitted=state.export_permitted,
                blocking_reasons=state.blocking_reasons,
                missing_permits=state.missing_permits,
                compliance_score=state.compliance_score,
                validated_at=state.evaluated_at,
            ))
            await self.audit.log_event(
                shipment_id,
                action,
                {
                    "export_permitted": state.export_permitted,
                    "compliance_score": state.compliance_score,
                    "strategic_items": state.strategic_items,
                    "missing_permits": state.missing_permits,
                    "blocking_reasons": state.blocking_reasons,
                    "indeterminate_items": state.indeterminate_items,
                },
                actor=actor,
            )
            await self.session.flush()

        compliance_checks_total.labels(result="permitted" if state.export_permitted else "blocked").inc()
        logger.info(
            "Compliance check %s: permitted=%s score=%d missing=%s",
            shipment_id, state.export_permitted, state.compliance_score, state.missing_permits,
        )
        return state

    async def validate_export(self, shipment_id: str, actor: str = "system") -> dict:
        state = await self.check_compliance(shipment_id, AuditAction.EXPORT_VALIDATION, actor=actor)
        return {
            "shipment_id": shipment_id,
            "shipment_found": state.shipment_found,
            "permitted": state.export_permitted,
            "missing_permits": state.missing_permits,
            "compliance_score": state.compliance_score,
            "blocking_reasons": state.blocking_reasons,
            "indeterminate_items": state.indeterminate_items,
        }

    async def refresh_item_states(self, shipment_id: str, at: datetime | None = None) -> ComplianceState:
        """
        Re-derive each current item's export_blocked / compliance_state under
        the shipment lock, without writing a validation log or audit entry.
        Used right after detection so stored rows never disagree with permits
        that were uploaded first.
        """
        async with self.locks.hold(shipment_id):
            return await self._recompute(shipment_id, at)

    # ── Dashboard ────────────────────────────────────────────────────────

    async def dashboard(self, days: int = 30, at: datetime | None = None) -> dict:
        """Cross-shipment detection, blocking, permit and review statistics over a window."""
        at = at or utcnow()
        since = at - timedelta(days=days)
        current = (
            DetectionResult.superseded_at.is_(None),
            DetectionResult.created_at >= since,
        )

        totals = (await self.session.execute(
            select(
                func.count(func.distinct(DetectionResult.shipment_id)),
                func.count(func.distinct(case(
                    (DetectionResult.is_strategic.is_(True), DetectionResult.shipment_id),
                ))),
                func.count(case((DetectionResult.is_strategic.is_(True), 1))),
                func.count(case((DetectionResult.export_blocked.is_(True), 1))),
                func.count(case((DetectionResult.determination == INDETERMINATE, 1))),
            ).where(*current)
        )).one()

        day = func.date(DetectionResult.created_at)
        daily = await self.session.execute(
            select(
                day,
                func.count(func.distinct(DetectionResult.shipment_id)),
                func.count(case((DetectionResult.is_strategic.is_(True), 1))),
                func.count(case((DetectionResult.export_blocked.is_(True), 1))),
                func.avg(case((DetectionResult.is_strategic.is_(True), DetectionResult.final_confidence))),
            )
            .where(*current)
            .group_by(day)
            .order_by(day.desc())
        )

        permits = await self.session.execute(
            select(
                PermitRecord.permit_type,
                func.count(),
                func.count(case((PermitRecord.is_valid.is_(True), 1))),
                func.count(case((PermitRecord.is_valid.is_(False), 1))),
            )
            .where(PermitRecord.uploaded_at >= since)
            .group_by(PermitRecord.permit_type)
            .order_by(func.count().desc(), PermitRecord.permit_type)
        )

        pending = (await self.session.execute(
            select(
                func.count(),
                func.count(func.distinct(ManualReviewItem.shipment_id)),
            ).where(ManualReviewItem.status.in_(("pending", "in_review")))
        )).one()

        return {
            "period_days": days,
            "totals": {
                "total_shipments": totals[0],
                "shipments_with_strategic": totals[1],
                "total_strategic_items": totals[2],
                "blocked_items": totals[3],
                "indeterminate_items": totals[4],
                "pending_reviews": pending[0],
                "shipments_pending_review": pending[1],
            },
            "daily_stats": [
                {
                    "date": str(d),
                    "shipments": shipments,
                    "strategic_items_detected": strategic,
                    "blocked_items": blocked,
                    "avg_detection_confidence": round(float(avg), 2) if avg is not None else None,
                }
                for d, shipments, strategic, blocked, avg in daily
            ],
            "permit_breakdown": [
                {
                    "permit_type": permit_type,
                    "total_uploads": total,
                    "valid_uploads": valid,
                    "invalid_uploads": invalid,
                }
                for permit_type, total, valid, invalid in permits
            ],
        }

    # ── Internals ────────────────────────────────────────────────────────

    async def _recompute(self, shipment_id: str, at: datetime | None) -> ComplianceState:
        """Evaluate and sync item states; the caller holds the shipment lock."""
        locked = await self.session.execute(
            select(Shipment.id)
            .where(Shipment.shipment_id == shipment_id)
            .with_for_update()
        )
        if locked.scalar_one_or_none() is None:
            return await self.evaluate(shipment_id, at)

        state = await self.evaluate(shipment_id, at)
        await self._sync_item_states(shipment_id, state)
        return state

    async def _detection_results(self, shipment_id: str) -> list[DetectionResult]:
        """Current (non-superseded) detection rows for a shipment."""
        result = await self.session.execute(
            select(DetectionResult)
            .where(
                DetectionResult.shipment_id == shipment_id,
                DetectionResult.superseded_at.is_(None),
            )
            .order_by(DetectionResult.item_index, DetectionResult.id)
        )
        return list(result.scalars())

    async def _expired_permit_types(self, shipment_id: str, at: datetime) -> set[str]:
        result = await self.session.execute(
            select(PermitRecord.permit_type, PermitRecord.upload_status, PermitRecord.expiry_date)
            .where(PermitRecord.shipment_id == shipment_id)
        )
        return {
            permit_type
            for permit_type, status, expiry in result
            if status == "expired" or (expiry is not None and expiry < at.date())
        }

    async def _sync_item_states(self, shipment_id: str, state: ComplianceState) -> None:
        by_id = {i.result_id: i for i in state.items}
        for row in await self._detection_results(shipment_id):
            item = by_id.get(row.result_id)
            if item is None:
                continue
            row.export_blocked = not item.covered
            row.compliance_state = item.state
            row.updated_at = utcnow()
