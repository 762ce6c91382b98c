"""
Master Tables: Organization, Branch, AppUser
"""
from sqlalchemy import Column, String, Boolean, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import enum

from branchstock.core import Base
from .base import UUIDMixin, TimestampMixin


class Role(str, enum.Enum):
    OWNER = "owner"
    MANAGER = "manager"
    STAFF = "staff"


class Organization(Base, UUIDMixin, TimestampMixin):
    """Tenant / customer account"""
    __tablename__ = "organization"
    
    code = Column(String(20), unique=True, nullable=False)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    
    # Relationships
    branches = relationship("Branch", back_populates="organization")
    users = relationship("AppUser", back_populates="organization")
    products = relationship("Product", back_populates="organization")

class Branch(Base, UUIDMixin, TimestampMixin):
    """Physical or logical location holding its own stock"""
    __tablename__ = "branch"
    
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organization.id"), nullable=False, index=True)
    code = Column(String(20))
    name = Column(String(200), nullable=False)
    address = Column(Text)
    phone = Column(String(50))
    is_main = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    
    # Relationships
    organization = relationship("Organization", back_populates="branches")
    stock_records = relationship("StockRecord", back_populates="branch")

class AppUser(Base, UUIDMixin, TimestampMixin):
    """Principal profile resolved from the identity token"""
    __tablename__ = "app_user"
    
    username = Column(String(100), unique=True, nullable=False)
    email = Column(String(200))
    first_name = Column(String(100))
    last_name = Column(String(100))
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organization.id"), nullable=True, index=True)
    branch_id = Column(UUID(as_uuid=True), ForeignKey("branch.id"), nullable=True)
    role = Column(String(20), default=Role.STAFF.value, nullable=False)  # owner, manager, staff
    is_platform_admin = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    
    # Relationships
    organization = relationship("Organization", back_populates="users")
    branch = relationship("Branch")

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.username
