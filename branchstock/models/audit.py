"""
Audit Log Model
"""
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from branchstock.core import Base
from .base import UUIDMixin, JSONType, utcnow

class AuditLog(Base, UUIDMixin):
    """Audit Log for tracking changes"""
    __tablename__ = "audit_log"
    
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organization.id"), index=True)
    table_name = Column(String(100), nullable=False, index=True)
    record_id = Column(String(50), nullable=False, index=True)
    
    action = Column(String(20), nullable=False)  # INSERT, UPDATE, STATUS_CHANGE, ADJUST
    
    performed_by = Column(UUID(as_uuid=True), ForeignKey("app_user.id"))
    performed_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True)
    
    # Before/After data
    before_data = Column(JSONType)
    after_data = Column(JSONType)
    
    # Additional context
    ip_address = Column(String(50))
    user_agent = Column(String(500))
