"""OrganizationMember model with per-member credit caps."""

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


MEMBER_ROLES = ("owner", "admin", "member")


class OrganizationMember(Base):
    """
    Membership of a user inside an organization.

    A NULL ``enrichment_limit``/``icp_limit`` means the member has no personal
    cap and is bounded only by the organization pool. Zero means fully blocked
    for that credit type.
    """

    __tablename__ = "organization_members"
    __table_args__ = (
        UniqueConstraint("org_id", "user_id", name="uq_org_members_org_user"),
        CheckConstraint("enrichment_used >= 0", name="ck_org_members_enrichment_used"),
        CheckConstraint("icp_used >= 0", name="ck_org_members_icp_used"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String, nullable=False, default="member")
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    enrichment_limit = Column(Integer, nullable=True)
    icp_limit = Column(Integer, nullable=True)
    enrichment_used = Column(Integer, nullable=False, default=0)
    icp_used = Column(Integer, nullable=False, default=0)

    is_blocked = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    organization = relationship("Organization", back_populates="members")
    user = relationship("User", back_populates="memberships")
