from datetime import date, datetime

from sqlalchemy import String, Boolean, Date, DateTime, BigInteger, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from exportgate.database import Base, JSONType


class PermitRecord(Base):
    __tablename__ = "permit_uploads"

    id: Mapped[int] = mapped_column(primary_key=True)
    permit_id: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    shipment_id: Mapped[str] = mapped_column(ForeignKey("shipments.shipment_id"), index=True)
    permit_type: Mapped[str] = mapped_column(String(50), index=True)
    permit_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    file_path: Mapped[str] = mapped_column(String(500))
    original_filename: Mapped[str] = mapped_column(String(255))
    file_size: Mapped[int] = mapped_column(BigInteger)
    mime_type: Mapped[str] = mapped_column(String(100))
    upload_status: Mapped[str] = mapped_column(String(20), default="uploaded", index=True)  # "uploaded" | "valid" | "invalid" | "expired"
    validation_result: Mapped[dict] = mapped_column(JSONType, default=dict)
    is_valid: Mapped[bool | None] = mapped_column(Boolean, nullable=True, index=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    compliance_deadline: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    uploaded_by: Mapped[str] = mapped_column(String(255))
    uploaded_at: Mapped[datetime] = mapped_column(DateTime)
    validated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    expired_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
