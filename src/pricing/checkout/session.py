"""Checkout sessions: a customer's progress from cart to order.

Sessions are short-lived and kept in Protean's cache, not in the database.
``CheckoutSessionStore`` wraps the cache with the configured expiry
(``CHECKOUT_SESSION_TTL``); an expired or unknown session is reported as
``ObjectNotFoundError``. Pricing itself lives on the cart; a session only
carries a copy of the cart's totals for display.

Steps advance Information -> Shipping -> Payment -> Review -> Complete.
"""

import json
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from uuid import uuid4

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Decimal, Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.inflection import underscore

from pricing.cart.cart import Cart
from pricing.cart.management import RecalculateCart, SelectShippingMethod, SetBillingAddress, SetShippingAddress
from pricing.cart.recalculation import shipping_options_for
from pricing.discount.usage import RecordDiscountUsage
from pricing.domain import pricing
from pricing.shared.timestamps import as_utc, utc_now

logger = structlog.get_logger(__name__)

DEFAULT_SESSION_TTL = 24 * 60 * 60


class CheckoutStep(Enum):
    INFORMATION = "Information"
    SHIPPING = "Shipping"
    PAYMENT = "Payment"
    REVIEW = "Review"
    COMPLETE = "Complete"


PAYMENT_METHODS = (
    {"id": "card", "name": "Credit/Debit Card", "type": "card", "is_default": True},
    {"id": "paypal", "name": "PayPal", "type": "paypal", "is_default": False},
    {"id": "bank_transfer", "name": "Bank Transfer", "type": "bank_transfer", "is_default": False},
)


@pricing.projection(cache="default")
class CheckoutSession:
    session_id = Identifier(identifier=True, required=True)
    cart_id = Identifier(required=True)
    customer_id = Identifier()
    customer_email = String(max_length=255)
    current_step = String(choices=CheckoutStep, default=CheckoutStep.INFORMATION.value)
    shipping_address = Text()  # JSON object
    billing_address = Text()  # JSON object
    selected_shipping_method_id = Identifier()
    selected_payment_method = String(max_length=50)
    order_id = Identifier()
    currency = String(max_length=3, default="USD")
    subtotal = Decimal(default=0)
    discount_total = Decimal(default=0)
    shipping_total = Decimal(default=0)
    tax_total = Decimal(default=0)
    grand_total = Decimal(default=0)
    created_at = DateTime()
    expires_at = DateTime()


@dataclass(frozen=True)
class CheckoutValidation:
    errors: tuple[str, ...] = ()
    failed_at_step: CheckoutStep | None = None

    @property
    def is_valid(self) -> bool:
        return not self.errors


class CheckoutSessionStore:
    """Keyed, expiring storage for checkout sessions."""

    def __init__(self, ttl: int | None = None):
        self.ttl = ttl or int(getattr(current_domain, "CHECKOUT_SESSION_TTL", DEFAULT_SESSION_TTL))

    @property
    def cache(self):
        return current_domain.cache_for(CheckoutSession)

    @staticmethod
    def key_for(session_id) -> str:
        return f"{underscore(CheckoutSession.__name__)}:::{session_id}"

    def save(self, session: CheckoutSession) -> CheckoutSession:
        self.cache.add(session, ttl=self.ttl)
        return session

    def get(self, session_id) -> CheckoutSession:
        session = self.cache.get(self.key_for(session_id))
        if session is not None and session.expires_at and as_utc(session.expires_at) < utc_now():
            self.remove(session_id)
            session = None
        if session is None:
            raise ObjectNotFoundError(f"Checkout session {session_id} not found or expired")
        return session

    def remove(self, session_id) -> None:
        key = self.key_for(session_id)
        if self.cache.get(key) is not None:
            self.cache.remove_by_key(key)


def _copy_totals(session: CheckoutSession, cart: Cart) -> None:
    session.currency = cart.currency
    session.subtotal = cart.subtotal
    session.discount_total = cart.discount_total
    session.shipping_total = cart.shipping_total
    session.tax_total = cart.tax_total
    session.grand_total = cart.grand_total


def _load_cart(cart_id) -> Cart:
    return current_domain.repository_for(Cart).get(cart_id)


def _advance(session: CheckoutSession, from_step: CheckoutStep, to_step: CheckoutStep) -> None:
    if session.current_step == from_step.value:
        session.current_step = to_step.value


# ---------------------------------------------------------------------------
# Flow
# ---------------------------------------------------------------------------
def start_checkout(cart_id, customer_email=None, store: CheckoutSessionStore | None = None) -> CheckoutSession:
    store = store or CheckoutSessionStore()
    cart = _load_cart(cart_id)
    if cart.is_empty:
        raise ValidationError({"cart": ["Cannot start checkout with an empty cart"]})

    now = utc_now()
    session = CheckoutSession(
        session_id=str(uuid4()),
        cart_id=str(cart.id),
        customer_id=str(cart.customer_id) if cart.customer_id else None,
        customer_email=customer_email,
        current_step=CheckoutStep.INFORMATION.value,
        shipping_address=json.dumps(cart.shipping_address.to_payload()) if cart.shipping_address else None,
        billing_address=json.dumps(cart.billing_address.to_payload()) if cart.billing_address else None,
        selected_shipping_method_id=cart.selected_shipping_method_id,
        created_at=now,
        expires_at=now + timedelta(seconds=store.ttl),
    )
    _copy_totals(session, cart)
    store.save(session)

    logger.info("Checkout started", session_id=session.session_id, cart_id=session.cart_id)
    return session


def get_session(session_id, store: CheckoutSessionStore | None = None) -> CheckoutSession:
    return (store or CheckoutSessionStore()).get(session_id)


def update_customer_email(session_id, customer_email, store: CheckoutSessionStore | None = None):
    store = store or CheckoutSessionStore()
    session = store.get(session_id)
    session.customer_email = customer_email
    return store.save(session)


def update_shipping_address(session_id, store: CheckoutSessionStore | None = None, **address) -> CheckoutSession:
    store = store or CheckoutSessionStore()
    session = store.get(session_id)

    current_domain.process(SetShippingAddress(cart_id=session.cart_id, **address), asynchronous=False)
    cart = _load_cart(session.cart_id)

    session.shipping_address = json.dumps(cart.shipping_address.to_payload())
    _copy_totals(session, cart)
    _advance(session, CheckoutStep.INFORMATION, CheckoutStep.SHIPPING)
    return store.save(session)


def update_billing_address(session_id, store: CheckoutSessionStore | None = None, **address) -> CheckoutSession:
    store = store or CheckoutSessionStore()
    session = store.get(session_id)

    current_domain.process(SetBillingAddress(cart_id=session.cart_id, **address), asynchronous=False)
    cart = _load_cart(session.cart_id)

    session.billing_address = json.dumps(cart.billing_address.to_payload())
    _copy_totals(session, cart)
    return store.save(session)


def shipping_options(session_id, store: CheckoutSessionStore | None = None):
    session = (store or CheckoutSessionStore()).get(session_id)
    return shipping_options_for(_load_cart(session.cart_id))


def select_shipping_method(session_id, shipping_method_id, store: CheckoutSessionStore | None = None):
    store = store or CheckoutSessionStore()
    session = store.get(session_id)

    current_domain.process(
        SelectShippingMethod(cart_id=session.cart_id, shipping_method_id=shipping_method_id),
        asynchronous=False,
    )
    cart = _load_cart(session.cart_id)

    session.selected_shipping_method_id = str(shipping_method_id)
    _copy_totals(session, cart)
    _advance(session, CheckoutStep.SHIPPING, CheckoutStep.PAYMENT)
    return store.save(session)


def select_payment_method(session_id, payment_method, store: CheckoutSessionStore | None = None):
    store = store or CheckoutSessionStore()
    session = store.get(session_id)
    if payment_method not in {m["id"] for m in PAYMENT_METHODS}:
        raise ValidationError({"payment_method": [f"Unknown payment method: {payment_method}"]})

    session.selected_payment_method = payment_method
    _advance(session, CheckoutStep.PAYMENT, CheckoutStep.REVIEW)
    return store.save(session)


def validate_session(session: CheckoutSession) -> CheckoutValidation:
    """Check each step in order and stop at the first incomplete one."""
    if not session.customer_email:
        return CheckoutValidation(("Email address is required.",), CheckoutStep.INFORMATION)
    if not session.shipping_address:
        return CheckoutValidation(("Shipping address is required.",), CheckoutStep.INFORMATION)
    if not session.selected_shipping_method_id:
        return CheckoutValidation(("Please select a shipping method.",), CheckoutStep.SHIPPING)
    if not session.selected_payment_method:
        return CheckoutValidation(("Please complete payment information.",), CheckoutStep.PAYMENT)
    return CheckoutValidation()


def complete_checkout(session_id, order_id, store: CheckoutSessionStore | None = None) -> CheckoutSession:
    """Reprice the cart, finish checkout for ``order_id`` and record one usage per applied discount."""
    store = store or CheckoutSessionStore()
    session = store.get(session_id)

    validation = validate_session(session)
    if not validation.is_valid:
        raise ValidationError({"checkout": list(validation.errors)})

    # Usage is recorded from fresh totals, so a coupon that lapsed since the last change is not counted
    current_domain.process(RecalculateCart(cart_id=session.cart_id), asynchronous=False)
    cart = _load_cart(session.cart_id)
    if cart.is_empty:
        raise ValidationError({"cart": ["Cannot complete checkout with an empty cart"]})

    for entry in cart.applied_discount_entries:
        current_domain.process(
            RecordDiscountUsage(
                discount_id=entry["discount_id"],
                order_id=str(order_id),
                customer_id=str(cart.customer_id) if cart.customer_id else None,
                amount=entry["amount"],
            ),
            asynchronous=False,
        )

    session.order_id = str(order_id)
    session.current_step = CheckoutStep.COMPLETE.value
    _copy_totals(session, cart)
    store.remove(session_id)

    logger.info(
        "Checkout completed",
        session_id=str(session_id),
        order_id=str(order_id),
        grand_total=str(cart.grand_total),
        discounts_used=len(cart.applied_discount_entries),
    )
    return session


def cancel_checkout(session_id, store: CheckoutSessionStore | None = None) -> None:
    store = store or CheckoutSessionStore()
    session = store.get(session_id)
    store.remove(session_id)
    logger.info("Checkout cancelled", session_id=str(session_id), cart_id=session.cart_id)
