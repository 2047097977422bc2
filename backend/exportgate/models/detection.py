from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, Integer, Numeric, Text, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from exportgate.database import Base, JSONType


class DetectionResult(Base):
    __tablename__ = "strategic_detection_results"

    id: Mapped[int] = mapped_column(primary_key=True)
    result_id: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    shipment_id: Mapped[str] = mapped_column(ForeignKey("shipments.shipment_id"), index=True)
    item_index: Mapped[int] = mapped_column(Integer, default=0)
    item_description: Mapped[str] = mapped_column(Text)
    hs_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 3), nullable=True)
    detection_layers: Mapped[dict] = mapped_column(JSONType, default=dict)
    final_confidence: Mapped[int] = mapped_column(Integer, default=0)  # 0-100
    is_strategic: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    determination: Mapped[str] = mapped_column(String(20))  # "strategic" | "not_strategic" | "indeterminate"
    strategic_codes: Mapped[list] = mapped_column(JSONType, default=list)
    required_permits: Mapped[list] = mapped_column(JSONType, default=list)
    export_blocked: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    compliance_state: Mapped[str] = mapped_column(String(20))  # "DETECTED" | "BLOCKED" | "CLEARED" | "OVERRIDDEN" | "NOT_CONTROLLED" | "PENDING_REVIEW"
    manual_review_required: Mapped[bool] = mapped_column(Boolean, default=False)
    manual_review_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    ruleset_version: Mapped[str] = mapped_column(String(30))
    superseded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)  # set when a re-detection replaces this row
    detection_method: Mapped[str] = mapped_column(String(50), default="multi_layer_rag")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
