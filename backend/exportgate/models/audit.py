import enum
from datetime import datetime

from sqlalchemy import String, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from exportgate.database import Base, JSONType


class AuditAction(str, enum.Enum):
    DETECTION = "DETECTION"
    PERMIT_UPLOAD = "PERMIT_UPLOAD"
    PERMIT_EXPIRED = "PERMIT_EXPIRED"
    COMPLIANCE_CHECK = "COMPLIANCE_CHECK"
    EXPORT_VALIDATION = "EXPORT_VALIDATION"
    MANUAL_REVIEW_REQUEST = "MANUAL_REVIEW_REQUEST"
    MANUAL_REVIEW_DECISION = "MANUAL_REVIEW_DECISION"


class AuditEntry(Base):
    __tablename__ = "audit_trail"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_id: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    shipment_id: Mapped[str] = mapped_column(String(50), index=True)
    action_type: Mapped[str] = mapped_column(String(30), index=True)
    actor: Mapped[str] = mapped_column(String(255))
    details: Mapped[dict] = mapped_column(JSONType, default=dict)
    previous_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    current_hash: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), index=True)
