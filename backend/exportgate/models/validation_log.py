from datetime import datetime

from sqlalchemy import String, Boolean, DateTime, Integer, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from exportgate.database import Base, JSONType


class ExportValidationLog(Base):
    __tablename__ = "export_validation_log"

    id: Mapped[int] = mapped_column(primary_key=True)
    shipment_id: Mapped[str] = mapped_column(ForeignKey("shipments.shipment_id"), index=True)
    trigger: Mapped[str] = mapped_column(String(30))
    validation_result: Mapped[dict] = mapped_column(JSONType, default=dict)
    export_permitted: Mapped[bool] = mapped_column(Boolean)
    blocking_reasons: Mapped[list] = mapped_column(JSONType, default=list)
    missing_permits: Mapped[list] = mapped_column(JSONType, default=list)
    compliance_score: Mapped[int] = mapped_column(Integer)
    validated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), index=True)
