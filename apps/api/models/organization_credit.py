"""OrganizationCredit model: per-org limits, usage, and billing window."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class OrganizationCredit(Base):
    """One row per organization, created lazily on first credit access."""

    __tablename__ = "organization_credits"
    __table_args__ = (
        CheckConstraint("enrichment_used >= 0", name="ck_org_credits_enrichment_used"),
        CheckConstraint("icp_used >= 0", name="ck_org_credits_icp_used"),
        CheckConstraint("enrichment_limit >= 0", name="ck_org_credits_enrichment_limit"),
        CheckConstraint("icp_limit >= 0", name="ck_org_credits_icp_limit"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, unique=True)
    plan_id = Column(String, nullable=False, default="free")

    enrichment_limit = Column(Integer, nullable=False, default=200)
    icp_limit = Column(Integer, nullable=False, default=1000)
    enrichment_used = Column(Integer, nullable=False, default=0)
    icp_used = Column(Integer, nullable=False, default=0)

    billing_cycle_start = Column(DateTime(timezone=True), nullable=False)
    billing_cycle_end = Column(DateTime(timezone=True), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    organization = relationship("Organization", back_populates="credit")
