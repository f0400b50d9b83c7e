from sqlalchemy import Column, String, DateTime, JSON, Index
from datetime import datetime
from uuid import uuid4
from eventrelay.database.base import Base
from eventrelay.utils.serialization import to_iso


class Event(Base):
    """
    Application-level event: a name, when it happened, and a free-form property bag.
    Immutable once persisted.
    """
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid4()))
    event_name = Column(String(255), nullable=False)
    timestamp = Column(DateTime, nullable=False)
    properties = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_events_event_name", "event_name"),
        Index("ix_events_timestamp", "timestamp"),
    )

    def to_payload(self) -> dict:
        """The event as it travels through routing and forwarding."""
        return {
            "id": self.id,
            "eventName": self.event_name,
            "timestamp": to_iso(self.timestamp),
            "properties": self.properties or {},
        }

    def to_dict(self) -> dict:
        data = self.to_payload()
        data["createdAt"] = to_iso(self.created_at)
        data["updatedAt"] = to_iso(self.updated_at)
        return data
