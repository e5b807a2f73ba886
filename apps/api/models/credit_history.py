"""CreditHistory model: append-only audit trail of credit consumption."""

from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from database import Base


class CreditHistory(Base):
    """Immutable record written once per successful consumption."""

    __tablename__ = "credit_history"
    __table_args__ = (
        Index("ix_credit_history_org_type_created", "org_id", "credit_type", "created_at"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    credit_type = Column(String, nullable=False)  # enrichment | icp
    transaction_type = Column(String, nullable=False)  # e.g. employee_fetch, scraper_run
    credits_used = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    search_id = Column(String, ForeignKey("searches.id", ondelete="SET NULL"), nullable=True)
    company_id = Column(String, nullable=True, index=True)
    metadata_json = Column(JSON, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    organization = relationship("Organization", back_populates="credit_entries")
    user = relationship("User", back_populates="credit_entries")
    search = relationship("Search")
