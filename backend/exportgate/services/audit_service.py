"""
Audit Trail Service

Append-only, hash-chained log of every detection run, permit upload, permit
expiry, gate decision and manual-review event. Each shipment has its own
chain: an entry's `previous_hash` is the `current_hash` of the prior entry
for the same shipment, so chains stay linear under the per-shipment
serialisation used by the compliance gate.
"""

import hashlib
import json
from collections import defaultdict
from uuid import uuid4

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from exportgate.models import AuditAction, AuditEntry


class AuditService:
    """Immutable, hash-chained audit trail keyed by shipment."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _calculate_hash(self, content: dict, previous_hash: str | None) -> str:
        """SHA-256 hash of entry contents + previous hash."""
        payload = {
            "content": content,
            "previous_hash": previous_hash or "",
        }
        raw = json.dumps(payload, sort_keys=True, default=str)
        return hashlib.sha256(raw.encode()).hexdigest()

    async def _get_latest_hash(self, shipment_id: str) -> str | None:
        result = await self.session.execute(
            select(AuditEntry.current_hash)
            .where(AuditEntry.shipment_id == shipment_id)
            .order_by(AuditEntry.id.desc())
            .limit(1)
        )
        return result.scalar()

    async def log_event(
        self,
        shipment_id: str,
        action: AuditAction,
        details: dict | None = None,
        actor: str = "system",
    ) -> AuditEntry:
        """
        Write an immutable audit entry.

        Args:
            shipment_id: Shipment the event belongs to
            action: AuditAction, e.g. DETECTION or PERMIT_UPLOAD
            details: Structured event details (JSON-serialisable)
            actor: "system", a user id, or "worker"
        """
        previous_hash = await self._get_latest_hash(shipment_id)

        entry_details = json.loads(json.dumps(details or {}, default=str))
        content_for_hash = {
            "shipment_id": shipment_id,
            "action_type": action.value,
            "actor": actor,
            "details": entry_details,
        }
        current_hash = self._calculate_hash(content_for_hash, previous_hash)

        entry = AuditEntry(
            event_id=str(uuid4()),
            shipment_id=shipment_id,
            action_type=action.value,
            actor=actor,
            details=entry_details,
            previous_hash=previous_hash,
            current_hash=current_hash,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    # ── Typed helpers ────────────────────────────────────────────────────

    async def log_detection(self, shipment_id: str, summary: dict) -> AuditEntry:
        return await self.log_event(shipment_id, AuditAction.DETECTION, summary)

    async def log_permit_upload(
        self, shipment_id: str, permit_id: str, permit_type: str, is_valid: bool, actor: str,
    ) -> AuditEntry:
        return await self.log_event(
            shipment_id,
            AuditAction.PERMIT_UPLOAD,
            {"permit_id": permit_id, "permit_type": permit_type, "is_valid": is_valid},
            actor=actor,
        )

    async def log_permit_expired(
        self, shipment_id: str, permit_id: str, permit_type: str, expiry_date,
    ) -> AuditEntry:
        return await self.log_event(
            shipment_id,
            AuditAction.PERMIT_EXPIRED,
            {"permit_id": permit_id, "permit_type": permit_type, "expiry_date": expiry_date},
        )

    async def log_review_request(
        self, shipment_id: str, queue_id: str, result_id: str, reason: str, actor: str = "system",
    ) -> AuditEntry:
        return await self.log_event(
            shipment_id,
            AuditAction.MANUAL_REVIEW_REQUEST,
            {"queue_id": queue_id, "detection_result_id": result_id, "reason": reason},
            actor=actor,
        )

    async def log_review_decision(
        self, shipment_id: str, queue_id: str, decision: str, reviewer: str, notes: str | None,
    ) -> AuditEntry:
        return await self.log_event(
            shipment_id,
            AuditAction.MANUAL_REVIEW_DECISION,
            {"queue_id": queue_id, "decision": decision, "notes": notes},
            actor=reviewer,
        )

    # ── Verification / queries ───────────────────────────────────────────

    async def verify_chain_integrity(self, shipment_id: str | None = None) -> dict:
        """Walk each shipment chain (or just one) and verify every entry's hash."""
        query = select(AuditEntry).order_by(AuditEntry.id.asc())
        if shipment_id:
            query = query.where(AuditEntry.shipment_id == shipment_id)
        entries = list((await self.session.execute(query)).scalars())

        if not entries:
            return {"valid": True, "entries_checked": 0, "first_invalid": None}

        chains: dict[str, list[AuditEntry]] = defaultdict(list)
        for entry in entries:
            chains[entry.shipment_id].append(entry)

        checked = 0
        for chain in chains.values():
            for i, entry in enumerate(chain):
                checked += 1
                expected_prev = chain[i - 1].current_hash if i > 0 else None
                if entry.previous_hash != expected_prev:
                    return {
                        "valid": False,
                        "entries_checked": checked,
                        "first_invalid": entry.event_id,
                        "reason": "previous_hash mismatch",
                    }

                content = {
                    "shipment_id": entry.shipment_id,
                    "action_type": entry.action_type,
                    "actor": entry.actor,
                    "details": entry.details,
                }
                if entry.current_hash != self._calculate_hash(content, entry.previous_hash):
                    return {
                        "valid": False,
                        "entries_checked": checked,
                        "first_invalid": entry.event_id,
                        "reason": "current_hash mismatch (data tampered)",
                    }

        return {"valid": True, "entries_checked": checked, "first_invalid": None}

    async def get_entries(
        self,
        shipment_id: str | None = None,
        action: AuditAction | str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditEntry]:
        """Query audit entries with optional filters, newest first."""
        query = select(AuditEntry).order_by(AuditEntry.id.desc())

        if shipment_id:
            query = query.where(AuditEntry.shipment_id == shipment_id)
        if action:
            value = action.value if isinstance(action, AuditAction) else action
            query = query.where(AuditEntry.action_type == value)

        query = query.offset(offset).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars())

    async def get_entry_count(self, shipment_id: str | None = None) -> int:
        query = select(func.count()).select_from(AuditEntry)
        if shipment_id:
            query = query.where(AuditEntry.shipment_id == shipment_id)
        result = await self.session.execute(query)
        return result.scalar() or 0
