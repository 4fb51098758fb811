"""Cart line management: commands and handler. Every change recalculates the cart."""

import json

from protean import handle
from protean.fields import Decimal, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from pricing.cart.cart import Cart
from pricing.cart.recalculation import recalculate
from pricing.domain import pricing


@pricing.command(part_of="Cart")
class AddCartLine:
    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    name = String(max_length=255)
    sku = String(max_length=100)
    unit_price = Decimal(required=True, min_value=0)
    quantity = Integer(required=True, min_value=1)
    category_ids = Text()  # JSON array
    tax_class = String(max_length=50)
    weight = Decimal(min_value=0)


@pricing.command(part_of="Cart")
class UpdateCartLine:
    """Set a line's quantity. Zero removes the line."""

    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    quantity = Integer(required=True)


@pricing.command(part_of="Cart")
class RemoveCartLine:
    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)


@pricing.command_handler(part_of=Cart)
class ManageCartLinesHandler:
    @handle(AddCartLine)
    def add_line(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        category_ids = command.category_ids
        line_id = cart.add_line(
            product_id=command.product_id,
            variant_id=command.variant_id,
            name=command.name,
            sku=command.sku,
            unit_price=command.unit_price,
            quantity=command.quantity,
            category_ids=json.loads(category_ids) if isinstance(category_ids, str) else category_ids,
            tax_class=command.tax_class,
            weight=command.weight,
        )
        recalculate(cart)
        repo.add(cart)
        return line_id

    @handle(UpdateCartLine)
    def update_line(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        cart.update_line(line_id=command.line_id, quantity=command.quantity)
        recalculate(cart)
        repo.add(cart)

    @handle(RemoveCartLine)
    def remove_line(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        cart.remove_line(line_id=command.line_id)
        recalculate(cart)
        repo.add(cart)
