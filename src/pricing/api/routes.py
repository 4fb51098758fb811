"""FastAPI routes for the Pricing domain: carts, discounts, tax, shipping and checkout."""

import json

from fastapi import APIRouter
from protean.utils.globals import current_domain

from pricing.api.schemas import (
    AddCartLineRequest,
    AddressSchema,
    ApplyCouponRequest,
    CartIdResponse,
    CartLineResponse,
    CartResponse,
    CheckoutSessionResponse,
    CheckoutValidationResponse,
    CodesResponse,
    CompleteCheckoutRequest,
    CountResponse,
    CouponCheckResponse,
    CreateCartRequest,
    CreateDiscountRequest,
    CreateShippingMethodRequest,
    CreateShippingRateRequest,
    CreateShippingZoneRequest,
    CreateTaxCategoryRequest,
    CreateTaxRateRequest,
    CreateTaxRatesForZoneRequest,
    CreateTaxZoneRequest,
    CustomerEmailRequest,
    DeactivateDiscountRequest,
    GenerateDiscountCodesRequest,
    IdListResponse,
    IdResponse,
    LineIdResponse,
    PaymentMethodRequest,
    PaymentMethodsResponse,
    RecordDiscountUsageRequest,
    SelectShippingMethodRequest,
    ShippingOptionResponse,
    ShippingOptionsResponse,
    ShippingQuoteRequest,
    StartCheckoutRequest,
    StatusResponse,
    TaxEstimateRequest,
    TaxEstimateResponse,
    TaxExemptionRequest,
    UpdateCartLineRequest,
    UpdateDiscountRequest,
    UpdateShippingZoneRequest,
    UpdateTaxZoneRequest,
    ZoneRulesSchema,
)
from pricing.cart.cart import Cart
from pricing.cart.coupons import ApplyCoupon, RemoveCoupon
from pricing.cart.items import AddCartLine, RemoveCartLine, UpdateCartLine
from pricing.cart.management import (
    CreateCart,
    RecalculateCart,
    SelectShippingMethod,
    SetBillingAddress,
    SetShippingAddress,
    SetTaxExemption,
)
from pricing.cart.recalculation import coupon_usage_count, shipping_options_for
from pricing.checkout import session as checkout
from pricing.discount.discount import Discount
from pricing.discount.engine import validate_coupon
from pricing.discount.management import (
    ActivateDiscount,
    CreateDiscount,
    DeactivateDiscount,
    DeactivateExpiredDiscounts,
    GenerateDiscountCodes,
    UpdateDiscount,
)
from pricing.discount.usage import RecordDiscountUsage
from pricing.shared.address import Address
from pricing.shared.zones import ZONE_LIST_FIELDS
from pricing.shipping.engine import ShipmentRequest, get_shipping_options
from pricing.shipping.management import (
    ActivateShippingMethod,
    CreateShippingMethod,
    CreateShippingRate,
    CreateShippingRatesForZone,
    CreateShippingZone,
    DeactivateShippingMethod,
    UpdateShippingZone,
)
from pricing.shipping.repository import load_shipping_configuration
from pricing.tax.engine import TaxRequest, calculate_tax
from pricing.tax.management import (
    CreateTaxCategory,
    CreateTaxRate,
    CreateTaxRatesForZone,
    CreateTaxZone,
    SetDefaultTaxCategory,
    SetDefaultTaxZone,
    ToggleTaxRate,
    UpdateTaxZone,
)
from pricing.tax.repository import load_tax_configuration


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _zone_lists(body: ZoneRulesSchema) -> dict:
    """JSON-encode the zone list fields that were supplied."""
    return {
        field_name: json.dumps(getattr(body, field_name))
        for field_name in ZONE_LIST_FIELDS
        if getattr(body, field_name) is not None
    }


def _settings(body, exclude=()) -> dict:
    """Scalar fields that were supplied, ready to pass to a command."""
    return body.model_dump(exclude_none=True, exclude=set(exclude) | set(ZONE_LIST_FIELDS))


def _address_schema(address) -> AddressSchema | None:
    return AddressSchema(**address.to_payload()) if address else None


def _cart_response(cart: Cart) -> CartResponse:
    return CartResponse(
        cart_id=str(cart.id),
        customer_id=str(cart.customer_id) if cart.customer_id else None,
        currency=cart.currency,
        coupon_code=cart.coupon_code,
        shipping_address=_address_schema(cart.shipping_address),
        billing_address=_address_schema(cart.billing_address),
        selected_shipping_method_id=(
            str(cart.selected_shipping_method_id) if cart.selected_shipping_method_id else None
        ),
        shipping_method_name=cart.shipping_method_name,
        is_tax_exempt=bool(cart.is_tax_exempt),
        lines=[
            CartLineResponse(
                line_id=str(line.id),
                product_id=str(line.product_id),
                variant_id=str(line.variant_id) if line.variant_id else None,
                name=line.name,
                sku=line.sku,
                unit_price=line.unit_price,
                quantity=line.quantity,
                line_total=line.line_total,
                discount_amount=line.discount_amount or 0,
                tax_amount=line.tax_amount or 0,
            )
            for line in cart.lines
        ],
        subtotal=cart.subtotal,
        discount_total=cart.discount_total,
        shipping_total=cart.shipping_total,
        shipping_tax=cart.shipping_tax,
        tax_total=cart.tax_total,
        grand_total=cart.grand_total,
        applied_discounts=cart.applied_discount_entries,
        tax_breakdown=cart.tax_breakdown_entries,
    )


def _options_response(options) -> ShippingOptionsResponse:
    return ShippingOptionsResponse(options=[ShippingOptionResponse(**option.to_payload()) for option in options])


def _session_response(session) -> CheckoutSessionResponse:
    return CheckoutSessionResponse(
        session_id=str(session.session_id),
        cart_id=str(session.cart_id),
        customer_email=session.customer_email,
        current_step=session.current_step,
        shipping_address=json.loads(session.shipping_address) if session.shipping_address else None,
        billing_address=json.loads(session.billing_address) if session.billing_address else None,
        selected_shipping_method_id=session.selected_shipping_method_id,
        selected_payment_method=session.selected_payment_method,
        order_id=session.order_id,
        currency=session.currency,
        subtotal=session.subtotal,
        discount_total=session.discount_total,
        shipping_total=session.shipping_total,
        tax_total=session.tax_total,
        grand_total=session.grand_total,
        expires_at=session.expires_at,
    )


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


@cart_router.post("", status_code=201, response_model=CartIdResponse)
async def create_cart(body: CreateCartRequest) -> CartIdResponse:
    command = CreateCart(
        customer_id=body.customer_id,
        session_id=body.session_id,
        currency=body.currency,
    )
    result = current_domain.process(command, asynchronous=False)
    return CartIdResponse(cart_id=result)


@cart_router.get("/{cart_id}", response_model=CartResponse)
async def get_cart(cart_id: str) -> CartResponse:
    cart = current_domain.repository_for(Cart).get(cart_id)
    return _cart_response(cart)


@cart_router.post("/{cart_id}/lines", status_code=201, response_model=LineIdResponse)
async def add_cart_line(cart_id: str, body: AddCartLineRequest) -> LineIdResponse:
    command = AddCartLine(
        cart_id=cart_id,
        product_id=body.product_id,
        variant_id=body.variant_id,
        name=body.name,
        sku=body.sku,
        unit_price=body.unit_price,
        quantity=body.quantity,
        category_ids=json.dumps(body.category_ids) if body.category_ids is not None else None,
        tax_class=body.tax_class,
        weight=body.weight,
    )
    result = current_domain.process(command, asynchronous=False)
    return LineIdResponse(line_id=result)


@cart_router.put("/{cart_id}/lines/{line_id}", response_model=StatusResponse)
async def update_cart_line(cart_id: str, line_id: str, body: UpdateCartLineRequest) -> StatusResponse:
    command = UpdateCartLine(cart_id=cart_id, line_id=line_id, quantity=body.quantity)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.delete("/{cart_id}/lines/{line_id}", response_model=StatusResponse)
async def remove_cart_line(cart_id: str, line_id: str) -> StatusResponse:
    command = RemoveCartLine(cart_id=cart_id, line_id=line_id)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.post("/{cart_id}/coupons", response_model=StatusResponse)
async def apply_coupon(cart_id: str, body: ApplyCouponRequest) -> StatusResponse:
    command = ApplyCoupon(cart_id=cart_id, coupon_code=body.coupon_code)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.delete("/{cart_id}/coupons", response_model=StatusResponse)
async def remove_coupon(cart_id: str) -> StatusResponse:
    command = RemoveCoupon(cart_id=cart_id)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.post("/{cart_id}/coupons/check", response_model=CouponCheckResponse)
async def check_coupon(cart_id: str, body: ApplyCouponRequest) -> CouponCheckResponse:
    """Validate a coupon against the cart without applying it."""
    cart = current_domain.repository_for(Cart).get(cart_id)
    discount = current_domain.repository_for(Discount).find_by_code(body.coupon_code)
    snapshot = cart.snapshot()
    validation = validate_coupon(
        discount,
        snapshot,
        customer_usage_count=coupon_usage_count(discount, snapshot.customer_id),
    )
    return CouponCheckResponse(
        is_valid=validation.is_valid,
        error=validation.error.value if validation.error else None,
        message=validation.message,
    )


@cart_router.put("/{cart_id}/shipping-address", response_model=StatusResponse)
async def set_shipping_address(cart_id: str, body: AddressSchema) -> StatusResponse:
    command = SetShippingAddress(cart_id=cart_id, **body.model_dump())
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.put("/{cart_id}/billing-address", response_model=StatusResponse)
async def set_billing_address(cart_id: str, body: AddressSchema) -> StatusResponse:
    command = SetBillingAddress(cart_id=cart_id, **body.model_dump())
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.get("/{cart_id}/shipping-options", response_model=ShippingOptionsResponse)
async def get_cart_shipping_options(cart_id: str) -> ShippingOptionsResponse:
    cart = current_domain.repository_for(Cart).get(cart_id)
    return _options_response(shipping_options_for(cart))


@cart_router.put("/{cart_id}/shipping-method", response_model=StatusResponse)
async def select_shipping_method(cart_id: str, body: SelectShippingMethodRequest) -> StatusResponse:
    command = SelectShippingMethod(cart_id=cart_id, shipping_method_id=body.shipping_method_id)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.put("/{cart_id}/tax-exemption", response_model=StatusResponse)
async def set_tax_exemption(cart_id: str, body: TaxExemptionRequest) -> StatusResponse:
    command = SetTaxExemption(
        cart_id=cart_id,
        is_tax_exempt=body.is_tax_exempt,
        tax_exemption_number=body.tax_exemption_number,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.post("/{cart_id}/recalculate", response_model=CartResponse)
async def recalculate_cart(cart_id: str) -> CartResponse:
    current_domain.process(RecalculateCart(cart_id=cart_id), asynchronous=False)
    cart = current_domain.repository_for(Cart).get(cart_id)
    return _cart_response(cart)


# ---------------------------------------------------------------------------
# Discount Router
# ---------------------------------------------------------------------------
discount_router = APIRouter(prefix="/discounts", tags=["discounts"])


@discount_router.post("", status_code=201, response_model=IdResponse)
async def create_discount(body: CreateDiscountRequest) -> IdResponse:
    settings = _settings(body, exclude=("applicable_product_ids", "applicable_category_ids"))
    command = CreateDiscount(
        applicable_product_ids=(
            json.dumps(body.applicable_product_ids) if body.applicable_product_ids is not None else None
        ),
        applicable_category_ids=(
            json.dumps(body.applicable_category_ids) if body.applicable_category_ids is not None else None
        ),
        **settings,
    )
    result = current_domain.process(command, asynchronous=False)
    return IdResponse(id=result)


@discount_router.post("/deactivate-expired", response_model=CountResponse)
async def deactivate_expired_discounts() -> CountResponse:
    result = current_domain.process(DeactivateExpiredDiscounts(), asynchronous=False)
    return CountResponse(count=result)


@discount_router.put("/{discount_id}", response_model=StatusResponse)
async def update_discount(discount_id: str, body: UpdateDiscountRequest) -> StatusResponse:
    command = UpdateDiscount(discount_id=discount_id, changes=json.dumps(body.changes, default=str))
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@discount_router.put("/{discount_id}/activate", response_model=StatusResponse)
async def activate_discount(discount_id: str) -> StatusResponse:
    current_domain.process(ActivateDiscount(discount_id=discount_id), asynchronous=False)
    return StatusResponse()


@discount_router.put("/{discount_id}/deactivate", response_model=StatusResponse)
async def deactivate_discount(discount_id: str, body: DeactivateDiscountRequest) -> StatusResponse:
    command = DeactivateDiscount(discount_id=discount_id, reason=body.reason or "Deactivated")
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@discount_router.post("/{discount_id}/codes", status_code=201, response_model=CodesResponse)
async def generate_discount_codes(discount_id: str, body: GenerateDiscountCodesRequest) -> CodesResponse:
    command = GenerateDiscountCodes(
        template_discount_id=discount_id,
        count=body.count,
        prefix=body.prefix,
    )
    result = current_domain.process(command, asynchronous=False)
    return CodesResponse(codes=result)


@discount_router.post("/{discount_id}/usages", status_code=201, response_model=IdResponse)
async def record_discount_usage(discount_id: str, body: RecordDiscountUsageRequest) -> IdResponse:
    command = RecordDiscountUsage(
        discount_id=discount_id,
        order_id=body.order_id,
        customer_id=body.customer_id,
        amount=body.amount,
    )
    result = current_domain.process(command, asynchronous=False)
    return IdResponse(id=result)


# ---------------------------------------------------------------------------
# Tax Router
# ---------------------------------------------------------------------------
tax_router = APIRouter(prefix="/tax", tags=["tax"])


@tax_router.post("/categories", status_code=201, response_model=IdResponse)
async def create_tax_category(body: CreateTaxCategoryRequest) -> IdResponse:
    result = current_domain.process(CreateTaxCategory(**_settings(body)), asynchronous=False)
    return IdResponse(id=result)


@tax_router.put("/categories/{category_id}/default", response_model=StatusResponse)
async def set_default_tax_category(category_id: str) -> StatusResponse:
    current_domain.process(SetDefaultTaxCategory(category_id=category_id), asynchronous=False)
    return StatusResponse()


@tax_router.post("/zones", status_code=201, response_model=IdResponse)
async def create_tax_zone(body: CreateTaxZoneRequest) -> IdResponse:
    command = CreateTaxZone(**_settings(body), **_zone_lists(body))
    result = current_domain.process(command, asynchronous=False)
    return IdResponse(id=result)


@tax_router.put("/zones/{zone_id}", response_model=StatusResponse)
async def update_tax_zone(zone_id: str, body: UpdateTaxZoneRequest) -> StatusResponse:
    command = UpdateTaxZone(zone_id=zone_id, **_settings(body), **_zone_lists(body))
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@tax_router.put("/zones/{zone_id}/default", response_model=StatusResponse)
async def set_default_tax_zone(zone_id: str) -> StatusResponse:
    current_domain.process(SetDefaultTaxZone(zone_id=zone_id), asynchronous=False)
    return StatusResponse()


@tax_router.post("/zones/{zone_id}/rates", status_code=201, response_model=IdListResponse)
async def create_tax_rates_for_zone(zone_id: str, body: CreateTaxRatesForZoneRequest) -> IdListResponse:
    command = CreateTaxRatesForZone(zone_id=zone_id, **_settings(body))
    result = current_domain.process(command, asynchronous=False)
    return IdListResponse(ids=result)


@tax_router.post("/rates", status_code=201, response_model=IdResponse)
async def create_tax_rate(body: CreateTaxRateRequest) -> IdResponse:
    result = current_domain.process(CreateTaxRate(**_settings(body)), asynchronous=False)
    return IdResponse(id=result)


@tax_router.put("/rates/{rate_id}/toggle", response_model=StatusResponse)
async def toggle_tax_rate(rate_id: str) -> StatusResponse:
    current_domain.process(ToggleTaxRate(rate_id=rate_id), asynchronous=False)
    return StatusResponse()


@tax_router.post("/estimate", response_model=TaxEstimateResponse)
async def estimate_tax(body: TaxEstimateRequest) -> TaxEstimateResponse:
    """Tax for a single amount at an address, without a cart."""
    result = calculate_tax(
        load_tax_configuration(),
        TaxRequest(
            address=Address.build(**body.address.model_dump()),
            amount=body.amount,
            tax_class=body.tax_class,
            is_tax_exempt=body.is_tax_exempt,
            exemption_number=body.exemption_number,
            shipping_amount=body.shipping_amount,
            includes_shipping=body.includes_shipping,
        ),
    )
    return TaxEstimateResponse(
        taxable_amount=result.taxable_amount,
        tax_amount=result.tax_amount,
        effective_rate=result.effective_rate,
        is_exempt=result.is_exempt,
        exemption_reason=result.exemption_reason,
        breakdown=[entry.to_payload() for entry in result.breakdown],
    )


# ---------------------------------------------------------------------------
# Shipping Router
# ---------------------------------------------------------------------------
shipping_router = APIRouter(prefix="/shipping", tags=["shipping"])


@shipping_router.post("/zones", status_code=201, response_model=IdResponse)
async def create_shipping_zone(body: CreateShippingZoneRequest) -> IdResponse:
    command = CreateShippingZone(**_settings(body), **_zone_lists(body))
    result = current_domain.process(command, asynchronous=False)
    return IdResponse(id=result)


@shipping_router.put("/zones/{zone_id}", response_model=StatusResponse)
async def update_shipping_zone(zone_id: str, body: UpdateShippingZoneRequest) -> StatusResponse:
    command = UpdateShippingZone(zone_id=zone_id, **_settings(body), **_zone_lists(body))
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@shipping_router.post("/zones/{zone_id}/rates", status_code=201, response_model=IdListResponse)
async def create_shipping_rates_for_zone(zone_id: str) -> IdListResponse:
    result = current_domain.process(CreateShippingRatesForZone(zone_id=zone_id), asynchronous=False)
    return IdListResponse(ids=result)


@shipping_router.post("/methods", status_code=201, response_model=IdResponse)
async def create_shipping_method(body: CreateShippingMethodRequest) -> IdResponse:
    result = current_domain.process(CreateShippingMethod(**_settings(body)), asynchronous=False)
    return IdResponse(id=result)


@shipping_router.put("/methods/{method_id}/activate", response_model=StatusResponse)
async def activate_shipping_method(method_id: str) -> StatusResponse:
    current_domain.process(ActivateShippingMethod(method_id=method_id), asynchronous=False)
    return StatusResponse()


@shipping_router.put("/methods/{method_id}/deactivate", response_model=StatusResponse)
async def deactivate_shipping_method(method_id: str) -> StatusResponse:
    current_domain.process(DeactivateShippingMethod(method_id=method_id), asynchronous=False)
    return StatusResponse()


@shipping_router.post("/rates", status_code=201, response_model=IdResponse)
async def create_shipping_rate(body: CreateShippingRateRequest) -> IdResponse:
    result = current_domain.process(CreateShippingRate(**_settings(body)), asynchronous=False)
    return IdResponse(id=result)


@shipping_router.post("/quote", response_model=ShippingOptionsResponse)
async def quote_shipping(body: ShippingQuoteRequest) -> ShippingOptionsResponse:
    """Priced shipping options for an address and parcel, without a cart."""
    request = ShipmentRequest(
        address=Address.build(**body.address.model_dump()),
        order_total=body.order_total,
        weight=body.weight,
        item_count=body.item_count,
    )
    return _options_response(get_shipping_options(load_shipping_configuration(), request))


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.get("/payment-methods", response_model=PaymentMethodsResponse)
async def list_payment_methods() -> PaymentMethodsResponse:
    return PaymentMethodsResponse(payment_methods=list(checkout.PAYMENT_METHODS))


@checkout_router.post("/sessions", status_code=201, response_model=CheckoutSessionResponse)
async def start_checkout(body: StartCheckoutRequest) -> CheckoutSessionResponse:
    session = checkout.start_checkout(body.cart_id, customer_email=body.customer_email)
    return _session_response(session)


@checkout_router.get("/sessions/{session_id}", response_model=CheckoutSessionResponse)
async def get_checkout_session(session_id: str) -> CheckoutSessionResponse:
    return _session_response(checkout.get_session(session_id))


@checkout_router.put("/sessions/{session_id}/email", response_model=CheckoutSessionResponse)
async def update_customer_email(session_id: str, body: CustomerEmailRequest) -> CheckoutSessionResponse:
    return _session_response(checkout.update_customer_email(session_id, body.customer_email))


@checkout_router.put("/sessions/{session_id}/shipping-address", response_model=CheckoutSessionResponse)
async def update_checkout_shipping_address(session_id: str, body: AddressSchema) -> CheckoutSessionResponse:
    return _session_response(checkout.update_shipping_address(session_id, **body.model_dump()))


@checkout_router.put("/sessions/{session_id}/billing-address", response_model=CheckoutSessionResponse)
async def update_checkout_billing_address(session_id: str, body: AddressSchema) -> CheckoutSessionResponse:
    return _session_response(checkout.update_billing_address(session_id, **body.model_dump()))


@checkout_router.get("/sessions/{session_id}/shipping-options", response_model=ShippingOptionsResponse)
async def get_checkout_shipping_options(session_id: str) -> ShippingOptionsResponse:
    return _options_response(checkout.shipping_options(session_id))


@checkout_router.put("/sessions/{session_id}/shipping-method", response_model=CheckoutSessionResponse)
async def select_checkout_shipping_method(
    session_id: str, body: SelectShippingMethodRequest
) -> CheckoutSessionResponse:
    return _session_response(checkout.select_shipping_method(session_id, body.shipping_method_id))


@checkout_router.put("/sessions/{session_id}/payment-method", response_model=CheckoutSessionResponse)
async def select_payment_method(session_id: str, body: PaymentMethodRequest) -> CheckoutSessionResponse:
    return _session_response(checkout.select_payment_method(session_id, body.payment_method))


@checkout_router.get("/sessions/{session_id}/validation", response_model=CheckoutValidationResponse)
async def validate_checkout(session_id: str) -> CheckoutValidationResponse:
    validation = checkout.validate_session(checkout.get_session(session_id))
    return CheckoutValidationResponse(
        is_valid=validation.is_valid,
        errors=list(validation.errors),
        failed_at_step=validation.failed_at_step.value if validation.failed_at_step else None,
    )


@checkout_router.post("/sessions/{session_id}/complete", response_model=CheckoutSessionResponse)
async def complete_checkout(session_id: str, body: CompleteCheckoutRequest) -> CheckoutSessionResponse:
    return _session_response(checkout.complete_checkout(session_id, body.order_id))


@checkout_router.delete("/sessions/{session_id}", response_model=StatusResponse)
async def cancel_checkout(session_id: str) -> StatusResponse:
    checkout.cancel_checkout(session_id)
    return StatusResponse()
