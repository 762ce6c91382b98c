"""
API Credential Models - key/secret pairs and the request log
"""
from sqlalchemy import Column, String, Text, Boolean, Integer, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from branchstock.core import Base
from .base import UUIDMixin, JSONType, utcnow


class ApiKey(Base, UUIDMixin):
    """
    Scoped credential for the programmatic inventory API
    """
    __tablename__ = "api_key"

    organization_id = Column(UUID(as_uuid=True), ForeignKey("organization.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    api_key = Column(String(100), unique=True, nullable=False, index=True)
    secret_hash = Column(String(255), nullable=False)
    permissions = Column(JSONType, default=list, nullable=False)  # ["read", "write"]
    is_active = Column(Boolean, default=True, nullable=False)
    expires_at = Column(DateTime(timezone=True))
    last_used_at = Column(DateTime(timezone=True))
    created_by = Column(UUID(as_uuid=True), ForeignKey("app_user.id"))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    request_logs = relationship("ApiRequestLog", back_populates="api_key_ref")

    def __repr__(self):
        return f"<ApiKey {self.name} {self.api_key[:16]}...>"

    def is_expired(self, now: datetime = None) -> bool:
        if not self.expires_at:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        # SQLite hands back naive datetimes
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at < now


class ApiRequestLog(Base, UUIDMixin):
    """
    One row per programmatic API call, for audit
    """
    __tablename__ = "api_request_log"

    api_key_id = Column(UUID(as_uuid=True), ForeignKey("api_key.id"), index=True)
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organization.id"), index=True)
    endpoint = Column(String(200), nullable=False)
    method = Column(String(10), nullable=False)
    status_code = Column(Integer, nullable=False)
    request_body = Column(JSONType)
    response_time_ms = Column(Integer)
    ip_address = Column(String(50))
    user_agent = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    # Relationships
    api_key_ref = relationship("ApiKey", back_populates="request_logs")
