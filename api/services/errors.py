"""Billing error taxonomy — every error here is expected and recoverable by the caller."""


class BillingError(Exception):
    """Base class; `code` is the stable machine-readable kind."""

    code = "billing_error"

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details


class NotFound(BillingError):
    """Plan, service, subscription or order is missing or inactive."""

    code = "not_found"


class NoActivePeriod(BillingError):
    """Subscription is not active, or the date falls outside its current period."""

    code = "no_active_period"


class InvalidOrderItems(BillingError):
    code = "invalid_order_items"


class EntitlementExhausted(BillingError):
    """Another order consumed the allowance between quote and submission. Re-quote."""

    code = "entitlement_exhausted"

    def __init__(self, quoted: int, remaining: int, message: str = ""):
        super().__init__(
            message or f"Plan allowance changed: quoted {quoted} covered, {remaining} remaining",
            quoted=quoted,
            remaining=remaining,
        )
        self.quoted = quoted
        self.remaining = remaining


class PaymentMethodRequired(BillingError):
    code = "payment_method_required"


class PlanChangeRejected(BillingError):
    code = "plan_change_rejected"


class QuoteExpired(BillingError):
    code = "quote_expired"
