"""
Permit Ledger

Records uploaded permits per (shipment, permit type), validates them with
the permit type's strategy, computes compliance deadlines and tracks expiry.

Records are never edited in place except by the expiry sweep. The
authoritative permit for a (shipment, permit type) pair is the most recently
uploaded record that is valid and not expired; older records stay for audit.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from exportgate.clock import utcnow
from exportgate.errors import ShipmentNotFound, StorageFailure, ValidationFailed
from exportgate.middleware.metrics import permit_uploads_total
from exportgate.models import DetectionResult, PermitRecord, Shipment
from exportgate.permits.registry import PermitRegistry
from exportgate.permits.validators import file_extension
from exportgate.services.audit_service import AuditService
from exportgate.storage import StorageBackend

if TYPE_CHECKING:
    from exportgate.services.compliance_gate import ComplianceGate, ComplianceState

logger = logging.getLogger(__name__)

MIME_TYPES = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def mime_type_for(filename: str) -> str:
    return MIME_TYPES.get(file_extension(filename), "application/octet-stream")


def is_current(record: PermitRecord, at: datetime) -> bool:
    """Valid and not expired at `at`."""
    if not record.is_valid or record.upload_status == "expired":
        return False
    return record.expiry_date is None or record.expiry_date >= at.date()


async def authoritative_permits(
    session: AsyncSession, shipment_id: str, at: datetime | None = None,
) -> dict[str, PermitRecord]:
    """Most recent valid, non-expired record per permit type for a shipment."""
    at = at or utcnow()
    result = await session.execute(
        select(PermitRecord)
        .where(PermitRecord.shipment_id == shipment_id, PermitRecord.is_valid.is_(True))
        .order_by(PermitRecord.uploaded_at.desc(), PermitRecord.id.desc())
    )
    permits: dict[str, PermitRecord] = {}
    for record in result.scalars():
        if record.permit_type not in permits and is_current(record, at):
            permits[record.permit_type] = record
    return permits


@dataclass
class PermitUploadResult:
    permit_id: str
    shipment_id: str
    permit_type: str
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    compliance_deadline: datetime | None = None
    file_path: str | None = None
    compliance: "ComplianceState | None" = None

    def to_dict(self) -> dict:
        return {
            "permit_id": self.permit_id,
            "shipment_id": self.shipment_id,
            "permit_type": self.permit_type,
            "is_valid": self.is_valid,
            "validation_errors": self.errors,
            "warnings": self.warnings,
            "compliance_deadline": self.compliance_deadline.isoformat() if self.compliance_deadline else None,
            "file_path": self.file_path,
            "compliance": self.compliance.to_dict() if self.compliance else None,
        }


class PermitLedger:
    """Permit uploads, status reporting and the expiry sweep."""

    def __init__(
        self,
        session: AsyncSession,
        registry: PermitRegistry,
        storage: StorageBackend,
        gate: "ComplianceGate",
    ):
        self.session = session
        self.registry = registry
        self.storage = storage
        self.gate = gate
        self.audit = AuditService(session)

    # ── Upload ───────────────────────────────────────────────────────────

    async def upload_permit(
        self,
        shipment_id: str,
        permit_type: str,
        file_bytes: bytes,
        filename: str,
        uploaded_by: str,
        expiry_date: date | None = None,
        permit_number: str | None = None,
    ) -> PermitUploadResult:
        """
        Store, record and validate a permit document, then recheck compliance.

        Raises:
            UnknownPermitType: permit type not in the registry (nothing stored)
            ShipmentNotFound: shipment does not exist (nothing stored)
            StorageFailure: the file or the record could not be written
        """
        ptype = self.registry.get(permit_type)
        await self._require_shipment(shipment_id)

        now = utcnow()
        permit_id = str(uuid4())
        safe_name = _UNSAFE_CHARS.sub("_", filename or "permit") or "permit"
        key = f"{shipment_id}/{permit_type}/{permit_id[:8]}_{safe_name}"
        mime_type = mime_type_for(filename)

        try:
            file_path = self.storage.put(key, file_bytes, mime_type)
        except (OSError, ValueError) as e:
            logger.error("Permit file write failed for %s/%s: %s", shipment_id, permit_type, e)
            raise StorageFailure(f"Could not store permit file: {e}", shipment_id=shipment_id) from e

        record = PermitRecord(
            permit_id=permit_id,
            shipment_id=shipment_id,
            permit_type=permit_type,
            permit_number=permit_number,
            file_path=file_path,
            original_filename=filename,
            file_size=len(file_bytes),
            mime_type=mime_type,
            upload_status="uploaded",
            expiry_date=expiry_date,
            uploaded_by=uploaded_by,
            uploaded_at=now,
        )

        errors: list[str] = []
        warnings: list[str] = []
        try:
            report = ptype.validator.validate(permit_type, filename, file_bytes)
            warnings = list(report.warnings)
            record.is_valid = True
            record.upload_status = "valid"
        except ValidationFailed as e:
            errors = list(e.errors)
            record.is_valid = False
            record.upload_status = "invalid"
        if expiry_date is not None and expiry_date < now.date():
            warnings.append(f"Permit expiry date {expiry_date.isoformat()} has already passed")

        record.validation_result = {"is_valid": record.is_valid, "errors": errors, "warnings": warnings}
        record.validated_at = now
        record.compliance_deadline = now + timedelta(days=ptype.deadline_days)

        try:
            self.session.add(record)
            await self.session.flush()
        except SQLAlchemyError as e:
            self.storage.delete(file_path)
            logger.error("Permit record write failed for %s/%s: %s", shipment_id, permit_type, e)
            raise StorageFailure(f"Could not record permit: {e}", shipment_id=shipment_id) from e

        permit_uploads_total.labels(permit_type=permit_type, valid=str(record.is_valid).lower()).inc()
        logger.info(
            "Permit %s uploaded for %s (%s): valid=%s", permit_id, shipment_id, permit_type, record.is_valid,
        )

        compliance = await self.gate.check_compliance(shipment_id, actor=uploaded_by)
        await self.audit.log_permit_upload(shipment_id, permit_id, permit_type, record.is_valid, uploaded_by)

        return PermitUploadResult(
            permit_id=permit_id,
            shipment_id=shipment_id,
            permit_type=permit_type,
            is_valid=record.is_valid,
            errors=errors,
            warnings=warnings,
            compliance_deadline=record.compliance_deadline,
            file_path=file_path,
            compliance=compliance,
        )

    async def authoritative_permit(
        self, shipment_id: str, permit_type: str, at: datetime | None = None,
    ) -> PermitRecord | None:
        permits = await authoritative_permits(self.session, shipment_id, at)
        return permits.get(permit_type)

    # ── Status ───────────────────────────────────────────────────────────

    async def get_permit_status(self, shipment_id: str) -> dict:
        """Required permits with their current status, plus every uploaded record."""
        await self._require_shipment(shipment_id)
        now = utcnow()

        detections = await self.session.execute(
            select(DetectionResult.required_permits, DetectionResult.compliance_state)
            .where(
                DetectionResult.shipment_id == shipment_id,
                DetectionResult.is_strategic.is_(True),
                DetectionResult.superseded_at.is_(None),
            )
        )
        required = list(dict.fromkeys(
            p for permits, state in detections if state != "OVERRIDDEN" for p in (permits or [])
        ))

        records = list((await self.session.execute(
            select(PermitRecord)
            .where(PermitRecord.shipment_id == shipment_id)
            .order_by(PermitRecord.uploaded_at.desc(), PermitRecord.id.desc())
        )).scalars())
        current = await authoritative_permits(self.session, shipment_id, now)

        required_info = []
        missing = []
        for code in required:
            info = self.registry.get(code).to_dict() if code in self.registry else {"code": code}
            latest = next((r for r in records if r.permit_type == code), None)
            if code in current:
                status = "valid"
                latest = current[code]
            elif latest is not None and (latest.is_valid or latest.upload_status == "expired"):
                status = "expired"
            elif latest is not None and latest.upload_status == "invalid":
                status = "invalid"
            else:
                status = "missing"
            if status != "valid":
                missing.append(code)
            required_info.append({
                **info,
                "permit_type": code,
                "status": status,
                "uploaded_at": latest.uploaded_at.isoformat() if latest else None,
                "expiry_date": latest.expiry_date.isoformat() if latest and latest.expiry_date else None,
            })

        invalid = [
            {
                "permit_id": r.permit_id,
                "permit_type": r.permit_type,
                "uploaded_at": r.uploaded_at.isoformat(),
                "validation_errors": (r.validation_result or {}).get("errors", []),
            }
            for r in records if r.upload_status == "invalid" and r.permit_type not in current
        ]

        if not missing:
            overall = "compliant"
        elif any(i["status"] == "invalid" for i in required_info):
            overall = "invalid_permits"
        else:
            overall = "missing_permits"

        return {
            "shipment_id": shipment_id,
            "required_permits": required_info,
            "uploaded_permits": [_record_dict(r) for r in records],
            "missing_permits": missing,
            "invalid_permits": invalid,
            "compliance_status": overall,
        }

    # ── Expiry sweep ─────────────────────────────────────────────────────

    async def cleanup_expired_permits(self, now: datetime | None = None) -> dict:
        """
        Flip valid permits whose expiry date has passed to invalid/expired and
        recheck compliance for every affected shipment.
        """
        now = now or utcnow()
        result = await self.session.execute(
            select(PermitRecord)
            .where(
                PermitRecord.is_valid.is_(True),
                PermitRecord.expiry_date.is_not(None),
                PermitRecord.expiry_date < now.date(),
            )
            .order_by(PermitRecord.shipment_id, PermitRecord.id)
        )
        expired = list(result.scalars())

        affected: list[str] = []
        for record in expired:
            record.is_valid = False
            record.upload_status = "expired"
            record.expired_at = now
            await self.audit.log_permit_expired(
                record.shipment_id, record.permit_id, record.permit_type, record.expiry_date,
            )
            if record.shipment_id not in affected:
                affected.append(record.shipment_id)
        await self.session.flush()

        still_permitted = 0
        for shipment_id in affected:
            state = await self.gate.check_compliance(shipment_id, actor="maintenance", at=now)
            if state.export_permitted:
                still_permitted += 1

        if expired:
            logger.info("Expired %d permits across %d shipments", len(expired), len(affected))
        return {
            "expired_permits": len(expired),
            "affected_shipments": affected,
            "shipments_blocked": len(affected) - still_permitted,
        }

    async def _require_shipment(self, shipment_id: str) -> None:
        found = await self.session.execute(
            select(Shipment.id).where(Shipment.shipment_id == shipment_id)
        )
        if found.scalar_one_or_none() is None:
            raise ShipmentNotFound(shipment_id)


def _record_dict(r: PermitRecord) -> dict:
    return {
        "permit_id": r.permit_id,
        "permit_type": r.permit_type,
        "permit_number": r.permit_number,
        "original_filename": r.original_filename,
        "file_size": r.file_size,
        "mime_type": r.mime_type,
        "upload_status": r.upload_status,
        "is_valid": r.is_valid,
        "expiry_date": r.expiry_date.isoformat() if r.expiry_date else None,
        "compliance_deadline": r.compliance_deadline.isoformat() if r.compliance_deadline else None,
        "uploaded_by": r.uploaded_by,
        "uploaded_at": r.uploaded_at.isoformat(),
    }
