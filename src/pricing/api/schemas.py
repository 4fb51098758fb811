"""Pydantic request/response schemas for the Pricing API.

These are external contracts (anti-corruption layer), kept separate from
the internal Protean commands. Money travels as decimal strings.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    country: str = Field(min_length=2, max_length=2)
    state: str | None = None
    city: str | None = None
    postal_code: str | None = None
    line1: str | None = None
    line2: str | None = None


class ZoneRulesSchema(BaseModel):
    """Geographic rules shared by tax and shipping zones. States use ``CC-ST`` keys."""

    countries: list[str] | None = None
    states: list[str] | None = None
    postal_code_patterns: list[str] | None = None
    cities: list[str] | None = None
    excluded_countries: list[str] | None = None
    excluded_states: list[str] | None = None
    excluded_postal_codes: list[str] | None = None


# ---------------------------------------------------------------------------
# Cart Request Schemas
# ---------------------------------------------------------------------------
class CreateCartRequest(BaseModel):
    customer_id: str | None = None
    session_id: str | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_id": "cust-001",
                    "session_id": None,
                    "currency": "USD",
                }
            ]
        }
    }


class AddCartLineRequest(BaseModel):
    product_id: str
    variant_id: str | None = None
    name: str | None = None
    sku: str | None = None
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1, default=1)
    category_ids: list[str] | None = None
    tax_class: str | None = None
    weight: Decimal | None = Field(default=None, ge=0)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "product_id": "prod-001",
                    "variant_id": "var-001",
                    "name": "Black T-Shirt (M)",
                    "sku": "TSHIRT-BLK-M",
                    "unit_price": "29.99",
                    "quantity": 2,
                    "category_ids": ["apparel"],
                    "tax_class": "STANDARD",
                    "weight": "0.25",
                }
            ]
        }
    }


class UpdateCartLineRequest(BaseModel):
    quantity: int  # Zero or less removes the line


class ApplyCouponRequest(BaseModel):
    coupon_code: str


class SelectShippingMethodRequest(BaseModel):
    shipping_method_id: str


class TaxExemptionRequest(BaseModel):
    is_tax_exempt: bool
    tax_exemption_number: str | None = None


# ---------------------------------------------------------------------------
# Discount Request Schemas
# ---------------------------------------------------------------------------
class CreateDiscountRequest(BaseModel):
    name: str
    discount_type: str
    value: Decimal = Field(ge=0, default=Decimal("0"))
    code: str | None = None
    description: str | None = None
    scope: str | None = None
    applicable_product_ids: list[str] | None = None
    applicable_category_ids: list[str] | None = None
    minimum_order_amount: Decimal | None = Field(default=None, ge=0)
    max_discount_amount: Decimal | None = Field(default=None, ge=0)
    minimum_quantity: int | None = Field(default=None, ge=1)
    maximum_quantity: int | None = Field(default=None, ge=1)
    start_date: datetime | None = None
    end_date: datetime | None = None
    total_usage_limit: int | None = Field(default=None, ge=0)
    per_customer_limit: int | None = Field(default=None, ge=0)
    priority: int = 0
    is_active: bool = True

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Summer Sale",
                    "discount_type": "Percentage",
                    "value": "10",
                    "code": "SUMMER10",
                    "minimum_order_amount": "50.00",
                    "per_customer_limit": 1,
                }
            ]
        }
    }


class UpdateDiscountRequest(BaseModel):
    changes: dict


class DeactivateDiscountRequest(BaseModel):
    reason: str | None = None


class GenerateDiscountCodesRequest(BaseModel):
    count: int = Field(ge=1, le=1000)
    prefix: str | None = None


class RecordDiscountUsageRequest(BaseModel):
    order_id: str
    customer_id: str | None = None
    amount: Decimal = Field(ge=0)


# ---------------------------------------------------------------------------
# Tax Request Schemas
# ---------------------------------------------------------------------------
class CreateTaxCategoryRequest(BaseModel):
    code: str
    name: str
    description: str | None = None
    is_tax_exempt: bool = False
    sort_order: int = 0
    is_default: bool = False


class CreateTaxZoneRequest(ZoneRulesSchema):
    code: str
    name: str
    priority: int = 0
    sort_order: int = 0
    is_default: bool = False

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "code": "US-CA",
                    "name": "California",
                    "countries": ["US"],
                    "states": ["US-CA"],
                }
            ]
        }
    }


class UpdateTaxZoneRequest(ZoneRulesSchema):
    name: str | None = None
    priority: int | None = None
    sort_order: int | None = None
    is_active: bool | None = None


class CreateTaxRateRequest(BaseModel):
    zone_id: str
    category_id: str
    name: str
    rate_type: str | None = None
    rate: Decimal = Decimal("0")
    flat_amount: Decimal | None = None
    is_compound: bool = False
    priority: int = 0
    sort_order: int = 0
    tax_shipping: bool = False
    minimum_amount: Decimal | None = None
    maximum_amount: Decimal | None = None
    maximum_tax: Decimal | None = None
    jurisdiction_type: str | None = None
    jurisdiction_name: str | None = None
    effective_from: datetime | None = None
    effective_to: datetime | None = None


class CreateTaxRatesForZoneRequest(BaseModel):
    rate: Decimal = Field(ge=0, le=100)
    name: str | None = None
    tax_shipping: bool = False


class TaxEstimateRequest(BaseModel):
    address: AddressSchema
    amount: Decimal = Field(ge=0)
    tax_class: str | None = None
    shipping_amount: Decimal = Field(ge=0, default=Decimal("0"))
    includes_shipping: bool = False
    is_tax_exempt: bool = False
    exemption_number: str | None = None


# ---------------------------------------------------------------------------
# Shipping Request Schemas
# ---------------------------------------------------------------------------
class CreateShippingZoneRequest(ZoneRulesSchema):
    code: str
    name: str
    description: str | None = None
    sort_order: int = 0
    is_default: bool = False


class UpdateShippingZoneRequest(ZoneRulesSchema):
    name: str | None = None
    description: str | None = None
    sort_order: int | None = None
    is_default: bool | None = None
    is_active: bool | None = None


class CreateShippingMethodRequest(BaseModel):
    code: str
    name: str
    description: str | None = None
    calculation_type: str | None = None
    carrier: str | None = None
    sort_order: int = 0
    flat_rate: Decimal | None = None
    weight_base_rate: Decimal | None = None
    weight_per_unit_rate: Decimal | None = None
    weight_unit: str | None = None
    price_percentage: Decimal | None = None
    per_item_rate: Decimal | None = None
    handling_fee: Decimal | None = None
    minimum_cost: Decimal | None = None
    maximum_cost: Decimal | None = None
    free_shipping_threshold: Decimal | None = None
    min_weight: Decimal | None = None
    max_weight: Decimal | None = None
    min_order_amount: Decimal | None = None
    max_order_amount: Decimal | None = None
    estimated_days_min: int | None = Field(default=None, ge=0)
    estimated_days_max: int | None = Field(default=None, ge=0)
    delivery_estimate_text: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "code": "STANDARD",
                    "name": "Standard Shipping",
                    "calculation_type": "FlatRate",
                    "flat_rate": "5.99",
                    "free_shipping_threshold": "75.00",
                    "estimated_days_min": 3,
                    "estimated_days_max": 5,
                }
            ]
        }
    }


class CreateShippingRateRequest(BaseModel):
    zone_id: str
    method_id: str
    sort_order: int = 0
    flat_rate: Decimal | None = None
    weight_base_rate: Decimal | None = None
    weight_per_unit_rate: Decimal | None = None
    price_percentage: Decimal | None = None
    per_item_rate: Decimal | None = None
    handling_fee: Decimal | None = None
    free_shipping_threshold: Decimal | None = None
    min_weight: Decimal | None = None
    max_weight: Decimal | None = None
    min_order_amount: Decimal | None = None
    max_order_amount: Decimal | None = None
    estimated_days_min: int | None = Field(default=None, ge=0)
    estimated_days_max: int | None = Field(default=None, ge=0)


class ShippingQuoteRequest(BaseModel):
    address: AddressSchema
    order_total: Decimal = Field(ge=0, default=Decimal("0"))
    weight: Decimal = Field(ge=0, default=Decimal("0"))
    item_count: int = Field(ge=0, default=0)


# ---------------------------------------------------------------------------
# Checkout Request Schemas
# ---------------------------------------------------------------------------
class StartCheckoutRequest(BaseModel):
    cart_id: str
    customer_email: str | None = None


class CustomerEmailRequest(BaseModel):
    customer_email: str


class PaymentMethodRequest(BaseModel):
    payment_method: str


class CompleteCheckoutRequest(BaseModel):
    order_id: str


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class CartIdResponse(BaseModel):
    cart_id: str


class LineIdResponse(BaseModel):
    line_id: str


class IdResponse(BaseModel):
    id: str


class IdListResponse(BaseModel):
    ids: list[str]


class CodesResponse(BaseModel):
    codes: list[str]


class CountResponse(BaseModel):
    count: int


class StatusResponse(BaseModel):
    status: str = "ok"


class CartLineResponse(BaseModel):
    line_id: str
    product_id: str
    variant_id: str | None = None
    name: str | None = None
    sku: str | None = None
    unit_price: Decimal
    quantity: int
    line_total: Decimal
    discount_amount: Decimal
    tax_amount: Decimal


class CartResponse(BaseModel):
    cart_id: str
    customer_id: str | None = None
    currency: str
    coupon_code: str | None = None
    shipping_address: AddressSchema | None = None
    billing_address: AddressSchema | None = None
    selected_shipping_method_id: str | None = None
    shipping_method_name: str | None = None
    is_tax_exempt: bool = False
    lines: list[CartLineResponse]
    subtotal: Decimal
    discount_total: Decimal
    shipping_total: Decimal
    shipping_tax: Decimal
    tax_total: Decimal
    grand_total: Decimal
    applied_discounts: list[dict]
    tax_breakdown: list[dict]


class ShippingOptionResponse(BaseModel):
    method_id: str
    method_code: str
    name: str
    description: str | None = None
    cost: Decimal
    carrier: str | None = None
    delivery_estimate: str | None = None
    is_free: bool = False
    free_shipping_reason: str | None = None


class ShippingOptionsResponse(BaseModel):
    options: list[ShippingOptionResponse]


class TaxEstimateResponse(BaseModel):
    taxable_amount: Decimal
    tax_amount: Decimal
    effective_rate: Decimal
    is_exempt: bool
    exemption_reason: str | None = None
    breakdown: list[dict]


class CouponCheckResponse(BaseModel):
    is_valid: bool
    error: str | None = None
    message: str | None = None


class CheckoutSessionResponse(BaseModel):
    session_id: str
    cart_id: str
    customer_email: str | None = None
    current_step: str
    shipping_address: dict | None = None
    billing_address: dict | None = None
    selected_shipping_method_id: str | None = None
    selected_payment_method: str | None = None
    order_id: str | None = None
    currency: str
    subtotal: Decimal
    discount_total: Decimal
    shipping_total: Decimal
    tax_total: Decimal
    grand_total: Decimal
    expires_at: datetime | None = None


class CheckoutValidationResponse(BaseModel):
    is_valid: bool
    errors: list[str]
    failed_at_step: str | None = None


class PaymentMethodsResponse(BaseModel):
    payment_methods: list[dict]
