from exportgate.models.shipment import Shipment  # noqa: F401
from exportgate.models.catalog import StrategicItem  # noqa: F401
from exportgate.models.detection import DetectionResult  # noqa: F401
from exportgate.models.review import ManualReviewItem  # noqa: F401
from exportgate.models.permit import PermitRecord  # noqa: F401
from exportgate.models.validation_log import ExportValidationLog  # noqa: F401
from exportgate.models.audit import AuditEntry, AuditAction  # noqa: F401
