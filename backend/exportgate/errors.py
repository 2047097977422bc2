"""
Error kinds for the compliance core.

Only `UnknownPermitType`, `ShipmentNotFound` (on explicit lookups) and
`StorageFailure` ever reach a caller. `LayerFailure` and
`EmbeddingProviderUnavailable` are absorbed into per-layer outcomes, and
`ValidationFailed` is recorded on the permit record.
"""


class ExportGateError(Exception):
    """Base class for all compliance-core errors."""

    status_code = 500

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": self.message, **self.context}


class UnknownPermitType(ExportGateError):
    status_code = 400

    def __init__(self, permit_type: str, known: list[str]):
        super().__init__(
            f"Invalid permit type: {permit_type}",
            permit_type=permit_type,
            known_permit_types=known,
        )
        self.permit_type = permit_type


class ShipmentNotFound(ExportGateError):
    status_code = 404

    def __init__(self, shipment_id: str):
        super().__init__(f"Shipment {shipment_id} does not exist", shipment_id=shipment_id)
        self.shipment_id = shipment_id


class LayerFailure(ExportGateError):
    def __init__(self, layer: str, cause: Exception):
        super().__init__(f"Layer {layer} failed: {cause}", layer=layer)
        self.layer = layer
        self.cause = cause


class EmbeddingProviderUnavailable(ExportGateError):
    status_code = 503


class ValidationFailed(ExportGateError):
    status_code = 422

    def __init__(self, permit_type: str, errors: list[str]):
        super().__init__(
            f"{permit_type} permit failed validation: {'; '.join(errors)}",
            permit_type=permit_type,
            errors=errors,
        )
        self.errors = errors


class StorageFailure(ExportGateError):
    status_code = 503


class InvalidReviewTransition(ExportGateError):
    status_code = 409


class ReviewItemNotFound(ExportGateError):
    status_code = 404

    def __init__(self, queue_id: str):
        super().__init__(f"Review item {queue_id} not found", queue_id=queue_id)


class DetectionResultNotFound(ExportGateError):
    status_code = 404

    def __init__(self, result_id: str):
        super().__init__(f"Detection result {result_id} not found", result_id=result_id)
