# src/assocpay/models/__init__.py

from .identity import (
    User,
    Profile,
    ProfileBadge
)
from .association import (
    Association,
    PricingPlan,
    AssociationMember,
    MembershipHistory,
    AssociationLead,
    MemberRole,
    MembershipTier,
    MembershipStatus,
    BillingCycle,
    LeadStatus,
    LeadSource,
    LeadPriority
)
from .payment import (
    PurchaseOrder,
    PurchaseIntentData,
    OrderStatus,
    PurchaseIntentStatus
)
