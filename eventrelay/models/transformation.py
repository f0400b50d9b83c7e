from sqlalchemy import Column, String, DateTime, Boolean, Text, JSON, Index
from datetime import datetime
from eventrelay.database.base import Base
from eventrelay.utils.serialization import to_iso
import cuid


class Transformation(Base):
    """
    Typed transform configuration compiled into an event -> payload function.
    """
    __tablename__ = "transformations"

    id = Column(String(25), primary_key=True, index=True, default=lambda: cuid.cuid())
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False)  # identity | template | script | jsonpath | mapping | slack | mixpanel
    config = Column(JSON, nullable=False, default=dict)
    enabled = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_transformations_type", "type"),
        Index("ix_transformations_enabled", "enabled"),
    )

    def to_spec(self) -> dict:
        return {"type": self.type, "config": self.config or {}}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "config": self.config or {},
            "enabled": self.enabled,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }
