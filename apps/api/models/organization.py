"""Organization model."""

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class Organization(Base):
    """Billing tenant synced from the identity provider."""

    __tablename__ = "organizations"

    id = Column(String, primary_key=True)  # identity provider org id
    name = Column(String, nullable=False)
    slug = Column(String, nullable=True, unique=True)
    image_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    members = relationship("OrganizationMember", back_populates="organization", cascade="all, delete-orphan")
    credit = relationship("OrganizationCredit", back_populates="organization", uselist=False)
    credit_entries = relationship("CreditHistory", back_populates="organization")
