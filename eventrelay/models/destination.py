from sqlalchemy import Column, String, DateTime, Boolean, Integer, Text, JSON, Index
from datetime import datetime
from typing import Optional
from eventrelay.database.base import Base
from eventrelay.core.crypto import CryptoError, get_crypto_util
from eventrelay.core.logger import get_logger
from eventrelay.utils.serialization import to_iso
import cuid

logger = get_logger("destination_model")


class Destination(Base):
    """
    HTTP sink for forwarded events. The signing secret is only ever stored as an
    encrypted envelope.
    """
    __tablename__ = "destinations"

    id = Column(String(25), primary_key=True, index=True, default=lambda: cuid.cuid())
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False)  # slack | mixpanel | webhook | custom
    url = Column(String(2048), nullable=False)
    method = Column(String(10), nullable=False, default="POST")
    event_types = Column(JSON, nullable=False, default=lambda: ["*"])
    config = Column(JSON, nullable=False, default=dict)
    transform = Column(JSON, nullable=True)
    secret_key_encrypted = Column(Text, nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)
    timeout = Column(Integer, nullable=False, default=5000)  # ms
    retry_strategy = Column(JSON, nullable=True)

    last_sent = Column(DateTime, nullable=True)
    success_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_destinations_type", "type"),
        Index("ix_destinations_enabled", "enabled"),
    )

    def set_secret(self, secret: Optional[str]) -> None:
        """Store ``secret`` encrypted; empty clears it. Input is always treated as plaintext."""
        if not secret:
            self.secret_key_encrypted = None
            return
        self.secret_key_encrypted = get_crypto_util().encrypt(secret)

    def get_decrypted_secret(self) -> Optional[str]:
        """Plaintext signing secret, or None when absent or undecryptable."""
        if not self.secret_key_encrypted:
            return None
        try:
            return get_crypto_util().decrypt(self.secret_key_encrypted)
        except CryptoError as e:
            logger.error(
                f"Signing secret for destination {self.name} is unavailable; delivering unsigned",
                extra={"destination_id": self.id, "error": str(e)},
            )
            return None

    @property
    def headers(self) -> dict:
        return dict((self.config or {}).get("headers") or {})

    def to_delivery_config(self) -> dict:
        """Live config for the registry and forwarder, with the secret decrypted."""
        config = self.config or {}
        return {
            "name": self.name,
            "type": self.type,
            "url": self.url,
            "method": self.method or "POST",
            "headers": self.headers,
            "secret": self.get_decrypted_secret(),
            "eventTypes": self.event_types,
            "transform": self.transform,
            "enabled": self.enabled,
            "timeout": self.timeout,
            "format": config.get("format") or "json",
            "retryStrategy": self.retry_strategy,
        }

    def to_dict(self) -> dict:
        """Public representation; never carries the secret."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "url": self.url,
            "method": self.method,
            "eventTypes": self.event_types,
            "config": self.config or {},
            "transform": self.transform,
            "hasSecret": bool(self.secret_key_encrypted),
            "enabled": self.enabled,
            "timeout": self.timeout,
            "retryStrategy": self.retry_strategy,
            "lastSent": to_iso(self.last_sent),
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "lastError": self.last_error,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }
