from sqlalchemy import Column, String, ForeignKey, DateTime, Boolean, Integer, Text, JSON, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from eventrelay.database.base import Base
from eventrelay.utils.serialization import to_iso
import cuid


class Route(Base):
    """
    Binds an event-type filter (plus optional condition) to a transformation and a destination.
    """
    __tablename__ = "routes"

    id = Column(String(25), primary_key=True, index=True, default=lambda: cuid.cuid())
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    event_types = Column(JSON, nullable=False, default=lambda: ["*"])
    transformation_id = Column(String(25), ForeignKey("transformations.id"), nullable=False, index=True)
    destination_id = Column(String(25), ForeignKey("destinations.id"), nullable=False, index=True)
    condition = Column(JSON, nullable=True)
    priority = Column(Integer, nullable=False, default=100)
    enabled = Column(Boolean, nullable=False, default=True)
    last_used = Column(DateTime, nullable=True)
    use_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    transformation = relationship("Transformation")
    destination = relationship("Destination")

    __table_args__ = (
        Index("ix_routes_enabled", "enabled"),
        Index("ix_routes_priority", "priority"),
    )

    def to_dict(self, include_relations: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "eventTypes": self.event_types,
            "transformationId": self.transformation_id,
            "destinationId": self.destination_id,
            "condition": self.condition,
            "priority": self.priority,
            "enabled": self.enabled,
            "lastUsed": to_iso(self.last_used),
            "useCount": self.use_count,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }
        if include_relations:
            transformation = self.__dict__.get("transformation")
            destination = self.__dict__.get("destination")
            data["transformation"] = {
                "id": transformation.id,
                "name": transformation.name,
                "type": transformation.type,
                "enabled": transformation.enabled,
            } if transformation is not None else None
            data["destination"] = {
                "id": destination.id,
                "name": destination.name,
                "type": destination.type,
                "url": destination.url,
                "enabled": destination.enabled,
            } if destination is not None else None
        return data
