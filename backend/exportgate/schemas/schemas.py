"""
Pydantic schemas for API request/response models.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field


# ── Pagination ──

class PaginatedResponse(BaseModel):
    total: int
    page: int
    size: int
    pages: int


# ── Shipments ──

class ShipmentCreate(BaseModel):
    shipment_id: str = Field(..., min_length=1, max_length=50)
    reference: str | None = Field(None, max_length=100)
    destination_country: str | None = Field(None, min_length=2, max_length=2)


class ShipmentOut(BaseModel):
    shipment_id: str
    reference: str | None = None
    destination_country: str | None = None
    created_at: datetime | None = None


# ── Detection ──

class ProductItemIn(BaseModel):
    description: str = Field(..., min_length=1)
    hs_code: str | None = None
    quantity: Decimal | None = None
    technical_specs: dict = {}


class DetectRequest(BaseModel):
    shipment_id: str
    items: list[ProductItemIn] = Field(..., min_length=1)


class DetectionResultOut(BaseModel):
    result_id: str | None = None
    item_index: int
    item_description: str
    hs_code: str | None = None
    final_confidence: int
    is_strategic: bool
    determination: str
    strategic_codes: list[str]
    required_permits: list[str]
    export_blocked: bool
    manual_review_required: bool
    review_queue_id: str | None = None
    failed_layers: list[str] = []
    detection_layers: dict = {}


class DetectionSummaryOut(BaseModel):
    shipment_id: str
    total_items: int
    strategic_items_found: int
    has_controlled_items: bool
    export_blocked: bool
    required_permits: list[str]
    compliance_score: int
    indeterminate_items: int
    ruleset_version: str
    persisted: bool
    export_permitted: bool | None = None
    results: list[DetectionResultOut]
    compliance_actions: list[dict] = []
    item_errors: list[dict] = []


class DetectionStatusOut(BaseModel):
    shipment_id: str
    total_items: int
    strategic_items: int
    blocked_items: int
    indeterminate_items: int
    pending_reviews: int
    average_confidence: float
    has_controlled_items: bool
    required_permits: list[str]
    items: list[dict] = []


# ── Permits ──

class PermitUploadOut(BaseModel):
    permit_id: str
    shipment_id: str
    permit_type: str
    is_valid: bool
    validation_errors: list[str] = []
    warnings: list[str] = []
    compliance_deadline: datetime | None = None
    file_path: str | None = None
    compliance: dict | None = None


class PermitStatusOut(BaseModel):
    shipment_id: str
    required_permits: list[dict]
    uploaded_permits: list[dict]
    missing_permits: list[str]
    invalid_permits: list[dict]
    compliance_status: str


class ExpirySweepOut(BaseModel):
    expired_permits: int
    affected_shipments: list[str]
    shipments_blocked: int


class SweepJobOut(BaseModel):
    job_id: str
    status: str


# ── Compliance ──

class ItemComplianceOut(BaseModel):
    result_id: str
    item_description: str
    required_permits: list[str]
    missing_permits: list[str]
    expired_permits: list[str] = []
    state: str


class ComplianceStateOut(BaseModel):
    shipment_id: str
    shipment_found: bool
    export_permitted: bool
    compliance_score: int
    missing_permits: list[str]
    blocking_reasons: list[str]
    strategic_items: int
    items: list[ItemComplianceOut]
    overridden_items: list[str] = []
    indeterminate_items: list[str] = []
    requires_attention: bool = False
    evaluated_at: datetime | None = None


class ExportValidationOut(BaseModel):
    shipment_id: str
    shipment_found: bool
    permitted: bool
    missing_permits: list[str]
    compliance_score: int
    blocking_reasons: list[str]
    indeterminate_items: list[str] = []


class DashboardTotals(BaseModel):
    total_shipments: int
    shipments_with_strategic: int
    total_strategic_items: int
    blocked_items: int
    indeterminate_items: int
    pending_reviews: int
    shipments_pending_review: int


class DashboardDay(BaseModel):
    date: str
    shipments: int
    strategic_items_detected: int
    blocked_items: int
    avg_detection_confidence: float | None = None


class PermitBreakdownItem(BaseModel):
    permit_type: str
    total_uploads: int
    valid_uploads: int
    invalid_uploads: int


class ComplianceDashboardOut(BaseModel):
    period_days: int
    totals: DashboardTotals
    daily_stats: list[DashboardDay]
    permit_breakdown: list[PermitBreakdownItem]


# ── Manual review ──

class ReviewSubmit(BaseModel):
    result_id: str
    reason: str = Field(..., min_length=1, max_length=255)
    requested_by: str
    priority: str = Field("normal", pattern="^(urgent|high|normal|low)$")


class ReviewAssign(BaseModel):
    reviewer: str


class ReviewDecision(BaseModel):
    decision: str = Field(..., pattern="^(confirmed|overridden)$")
    reviewer: str
    notes: str | None = Field(None, max_length=2000)


class ReviewItemOut(BaseModel):
    queue_id: str
    detection_result_id: str
    shipment_id: str
    priority: str
    review_reason: str
    status: str
    assigned_to: str | None = None
    decision: str | None = None
    review_notes: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None


# ── Audit ──

class AuditEntryOut(BaseModel):
    id: int
    event_id: str
    shipment_id: str
    action_type: str
    actor: str
    details: dict = {}
    previous_hash: str | None = None
    current_hash: str
    created_at: datetime | None = None


class AuditListResponse(PaginatedResponse):
    items: list[AuditEntryOut]


class IntegrityCheckResponse(BaseModel):
    valid: bool
    entries_checked: int
    first_invalid: str | None = None
    reason: str | None = None


# ── Catalog ──

class CatalogEntryOut(BaseModel):
    code: str
    description: str
    category: str
    subcategory: str | None = None
    keywords: list[str]
    technical_thresholds: dict = {}
    required_permits: list[str]
    permit_deadlines: dict = {}
    has_embedding: bool


class PermitTypeOut(BaseModel):
    code: str
    name: str
    authority: str
    deadline_days: int
    mandatory: bool


