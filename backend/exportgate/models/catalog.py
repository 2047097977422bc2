from datetime import date, datetime

from sqlalchemy import String, Date, DateTime, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from exportgate.database import Base, JSONType


class StrategicItem(Base):
    __tablename__ = "strategic_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    description: Mapped[str] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(100), index=True)
    subcategory: Mapped[str | None] = mapped_column(String(100), nullable=True)
    keywords: Mapped[list] = mapped_column(JSONType, default=list)
    technical_thresholds: Mapped[dict] = mapped_column(JSONType, default=dict)
    embedding: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    required_permits: Mapped[list] = mapped_column(JSONType, default=list)
    permit_deadlines: Mapped[dict] = mapped_column(JSONType, default=dict)  # permit type -> {deadline_days, authority, mandatory}
    control_list_source: Mapped[str] = mapped_column(String(100))
    effective_date: Mapped[date] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
