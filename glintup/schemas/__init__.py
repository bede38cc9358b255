from glintup.schemas.health import Alert, HealthSnapshot, RepairResult
from glintup.schemas.llm import GeneratedWord, GenerationRequest
from glintup.schemas.settings import DeliverySettingsResponse, DeliverySettingsUpdate

__all__ = [
    "Alert",
    "HealthSnapshot",
    "RepairResult",
    "GeneratedWord",
    "GenerationRequest",
    "DeliverySettingsResponse",
    "DeliverySettingsUpdate",
]
