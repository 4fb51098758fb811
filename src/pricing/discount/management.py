"""Discount administration: commands and handler.

Coupon codes are stored upper-cased and must be unique. Generated codes are
random ``A-Z0-9`` strings, optionally prefixed with ``PREFIX-``.
"""

import json
import secrets
import string

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Decimal, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from pricing.discount.discount import EDITABLE_FIELDS, Discount, DiscountType
from pricing.domain import pricing
from pricing.shared.timestamps import utc_now

logger = structlog.get_logger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


@pricing.command(part_of="Discount")
class CreateDiscount:
    """Configure a coupon (with ``code``) or an automatic discount (without)."""

    name = String(required=True, max_length=200)
    discount_type = String(required=True, choices=DiscountType)
    value = Decimal(default=0, min_value=0)
    code = String(max_length=50)
    description = Text()
    scope = String(max_length=10)
    applicable_product_ids = Text()  # JSON array
    applicable_category_ids = Text()  # JSON array
    minimum_order_amount = Decimal(min_value=0)
    max_discount_amount = Decimal(min_value=0)
    minimum_quantity = Integer(min_value=1)
    maximum_quantity = Integer(min_value=1)
    start_date = DateTime()
    end_date = DateTime()
    total_usage_limit = Integer(min_value=0)
    per_customer_limit = Integer(min_value=0)
    priority = Integer(default=0)
    is_active = Boolean(default=True)


@pricing.command(part_of="Discount")
class UpdateDiscount:
    """Change discount settings. ``changes`` is a JSON object of field -> value."""

    discount_id = Identifier(required=True)
    changes = Text(required=True)


@pricing.command(part_of="Discount")
class ActivateDiscount:
    discount_id = Identifier(required=True)


@pricing.command(part_of="Discount")
class DeactivateDiscount:
    discount_id = Identifier(required=True)
    reason = String(max_length=255, default="Deactivated")


@pricing.command(part_of="Discount")
class DeactivateExpiredDiscounts:
    """Sweep active discounts that ended or ran out of uses."""

    as_of = DateTime()  # Optional: defaults to now


@pricing.command(part_of="Discount")
class GenerateDiscountCodes:
    """Issue ``count`` single coupons copied from a template discount."""

    template_discount_id = Identifier(required=True)
    count = Integer(required=True, min_value=1, max_value=1000)
    prefix = String(max_length=20)


def _decode_ids(raw):
    if raw is None:
        return None
    return json.loads(raw) if isinstance(raw, str) else raw


def generate_code(prefix=None, length=8) -> str:
    body = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
    prefix = prefix.strip().upper() if prefix else ""
    return f"{prefix}-{body}" if prefix else body


@pricing.command_handler(part_of=Discount)
class ManageDiscountHandler:
    @handle(CreateDiscount)
    def create_discount(self, command):
        repo = current_domain.repository_for(Discount)
        if command.code and repo.code_exists(command.code):
            raise ValidationError({"code": ["Coupon code already exists"]})

        settings = {
            field_name: getattr(command, field_name)
            for field_name in (
                "description",
                "minimum_order_amount",
                "max_discount_amount",
                "minimum_quantity",
                "maximum_quantity",
                "start_date",
                "end_date",
                "total_usage_limit",
                "per_customer_limit",
                "priority",
                "is_active",
            )
        }
        if command.scope:
            settings["scope"] = command.scope

        discount = Discount.create(
            name=command.name,
            discount_type=command.discount_type,
            value=command.value,
            code=command.code,
            applicable_product_ids=_decode_ids(command.applicable_product_ids),
            applicable_category_ids=_decode_ids(command.applicable_category_ids),
            **settings,
        )
        repo.add(discount)

        logger.info(
            "Discount created",
            discount_id=str(discount.id),
            code=discount.code,
            discount_type=discount.discount_type,
        )
        return str(discount.id)

    @handle(UpdateDiscount)
    def update_discount(self, command):
        repo = current_domain.repository_for(Discount)
        discount = repo.get(command.discount_id)

        changes = json.loads(command.changes) if isinstance(command.changes, str) else command.changes
        if not isinstance(changes, dict) or not changes:
            raise ValidationError({"changes": ["At least one field must be changed"]})
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError({"changes": [f"Fields cannot be changed: {', '.join(sorted(unknown))}"]})

        discount.update(**changes)
        repo.add(discount)

    @handle(ActivateDiscount)
    def activate_discount(self, command):
        repo = current_domain.repository_for(Discount)
        discount = repo.get(command.discount_id)
        discount.activate()
        repo.add(discount)

    @handle(DeactivateDiscount)
    def deactivate_discount(self, command):
        repo = current_domain.repository_for(Discount)
        discount = repo.get(command.discount_id)
        discount.deactivate(reason=command.reason or "Deactivated")
        repo.add(discount)

    @handle(DeactivateExpiredDiscounts)
    def deactivate_expired(self, command):
        as_of = command.as_of or utc_now()
        repo = current_domain.repository_for(Discount)

        deactivated = 0
        for discount in repo.active():
            if discount.is_expired(as_of):
                discount.deactivate(reason="Expired")
            elif discount.is_usage_limit_reached:
                discount.deactivate(reason="Usage limit reached")
            else:
                continue
            repo.add(discount)
            deactivated += 1

        logger.info("Expired discount sweep complete", deactivated_count=deactivated)
        return deactivated

    @handle(GenerateDiscountCodes)
    def generate_codes(self, command):
        repo = current_domain.repository_for(Discount)
        template = repo.get(command.template_discount_id)
        length = getattr(current_domain, "DISCOUNT_CODE_LENGTH", 8)

        codes = []
        for _ in range(command.count):
            code = generate_code(command.prefix, length)
            while code in codes or repo.code_exists(code):
                code = generate_code(command.prefix, length)
            codes.append(code)

            coupon = Discount.create(
                name=template.name,
                discount_type=template.discount_type,
                value=template.value,
                code=code,
                applicable_product_ids=sorted(template.product_ids),
                applicable_category_ids=sorted(template.category_ids),
                description=template.description,
                scope=template.scope,
                minimum_order_amount=template.minimum_order_amount,
                max_discount_amount=template.max_discount_amount,
                minimum_quantity=template.minimum_quantity,
                maximum_quantity=template.maximum_quantity,
                start_date=template.start_date,
                end_date=template.end_date,
                total_usage_limit=1,
                per_customer_limit=template.per_customer_limit,
                priority=template.priority,
            )
            repo.add(coupon)

        logger.info("Generated discount codes", template_discount_id=str(template.id), count=len(codes))
        return codes
