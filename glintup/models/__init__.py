from glintup.models.base import Base
from glintup.models.delivery_status import DeliveryStatusRecord
from glintup.models.job_run import JobRun
from glintup.models.outbox import OutboxJob, OutboxStatus
from glintup.models.subscriber import (
    Channel,
    CustomDeliveryTime,
    DeliveryMode,
    DeliverySettings,
    Subscriber,
)
from glintup.models.vocabulary import VocabularyWord, WordHistoryEntry, WordSource

__all__ = [
    "Base",
    "Subscriber",
    "DeliverySettings",
    "CustomDeliveryTime",
    "DeliveryMode",
    "Channel",
    "VocabularyWord",
    "WordHistoryEntry",
    "WordSource",
    "OutboxJob",
    "OutboxStatus",
    "DeliveryStatusRecord",
    "JobRun",
]
