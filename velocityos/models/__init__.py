from .org import Org
from .user import User
from .org_membership import OrgMembership, ROLE_OWNER, ROLE_ADMIN, ROLE_MEMBER
from .customer import Customer
from .campaign import Campaign
from .feedback import Feedback
from .payment import Payment
from .call_request import CallRequest
from .agent import AgentState, AIOperation
from .workspace import GoogleWorkspaceToken, WorkspaceImport
from .email_log import EmailLog
from .billing_event import BillingEventLog

__all__ = [
    "Org",
    "User",
    "OrgMembership",
    "ROLE_OWNER",
    "ROLE_ADMIN",
    "ROLE_MEMBER",
    "Customer",
    "Campaign",
    "Feedback",
    "Payment",
    "CallRequest",
    "AgentState",
    "AIOperation",
    "GoogleWorkspaceToken",
    "WorkspaceImport",
    "EmailLog",
    "BillingEventLog",
]
