from sqlalchemy import Column, String, DateTime, Boolean, JSON, Index
from datetime import datetime
from eventrelay.database.base import Base
from eventrelay.utils.serialization import to_iso
import cuid


class InboundProviderEvent(Base):
    """
    Idempotency record for signed provider webhooks (one row per provider event id).
    Kept for auditing and reprocessing.
    """
    __tablename__ = "inbound_provider_events"

    id = Column(String(25), primary_key=True, index=True, default=lambda: cuid.cuid())
    provider_event_id = Column(String(255), nullable=False, unique=True)
    provider_type = Column(String(40), nullable=False)  # 'stripe'
    event_type = Column(String(120), nullable=False)
    provider_event_timestamp = Column(DateTime, nullable=False)
    provider_account = Column(String(255), nullable=True)
    api_version = Column(String(40), nullable=True)
    object_id = Column(String(255), nullable=True)
    object_type = Column(String(80), nullable=True)
    data = Column(JSON, nullable=False)
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime, nullable=True)
    processing_errors = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_inbound_provider_type", "provider_type", "event_type"),
        Index("ix_inbound_processed_time", "processed", "provider_event_timestamp"),
        Index("ix_inbound_object_id", "object_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "providerEventId": self.provider_event_id,
            "providerType": self.provider_type,
            "eventType": self.event_type,
            "providerEventTimestamp": to_iso(self.provider_event_timestamp),
            "providerAccount": self.provider_account,
            "apiVersion": self.api_version,
            "objectId": self.object_id,
            "objectType": self.object_type,
            "processed": self.processed,
            "processedAt": to_iso(self.processed_at),
            "processingErrors": self.processing_errors,
            "createdAt": to_iso(self.created_at),
        }
