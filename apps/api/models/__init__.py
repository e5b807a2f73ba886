"""Models package."""

from .user import User
from .organization import Organization
from .organization_member import OrganizationMember
from .organization_credit import OrganizationCredit
from .search import Search
from .credit_history import CreditHistory
