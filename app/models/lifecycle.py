"""
Status state machines for checkout sessions and subscriptions.

Each status enum owns its transition table; model code goes through
`can_transition_to()` rather than comparing raw strings.
"""
from enum import Enum


class CheckoutStatus(str, Enum):
    """Checkout session status: pending -> completed | expired, never back."""
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"

    def can_transition_to(self, target: "CheckoutStatus") -> bool:
        return target in _CHECKOUT_TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return not _CHECKOUT_TRANSITIONS[self]


_CHECKOUT_TRANSITIONS = {
    CheckoutStatus.PENDING: frozenset({CheckoutStatus.COMPLETED, CheckoutStatus.EXPIRED}),
    CheckoutStatus.COMPLETED: frozenset(),
    CheckoutStatus.EXPIRED: frozenset(),
}


class SubscriptionStatus(str, Enum):
    """User subscription status."""
    TRIAL = "trial"
    ACTIVE = "active"
    CANCELED = "canceled"
    EXPIRED = "expired"

    def can_transition_to(self, target: "SubscriptionStatus") -> bool:
        return target in _SUBSCRIPTION_TRANSITIONS[self]

    @property
    def is_current(self) -> bool:
        """Trial and active subscriptions both grant access."""
        return self in CURRENT_SUBSCRIPTION_STATUSES


_SUBSCRIPTION_TRANSITIONS = {
    SubscriptionStatus.TRIAL: frozenset({
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.CANCELED,
        SubscriptionStatus.EXPIRED,
    }),
    SubscriptionStatus.ACTIVE: frozenset({
        SubscriptionStatus.CANCELED,
        SubscriptionStatus.EXPIRED,
    }),
    SubscriptionStatus.CANCELED: frozenset(),
    SubscriptionStatus.EXPIRED: frozenset(),
}

# At most one subscription per user may sit in one of these at any time
CURRENT_SUBSCRIPTION_STATUSES = (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE)


class DiscountType(str, Enum):
    """How a promo code's discount value is interpreted."""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class BillingInterval(str, Enum):
    """Billing interval of a plan."""
    MONTH = "month"
    YEAR = "year"
    LIFETIME = "lifetime"


class FeatureType(str, Enum):
    """Kind of value a feature carries on a plan."""
    BOOLEAN = "boolean"
    NUMERIC = "numeric"
    TEXT = "text"
