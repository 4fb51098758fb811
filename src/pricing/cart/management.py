"""Cart management: creation, addresses, shipping method, tax status and explicit recalculation."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from pricing.cart.cart import Cart
from pricing.cart.recalculation import recalculate, shipping_options_for
from pricing.domain import pricing
from pricing.shared.address import Address


@pricing.command(part_of="Cart")
class CreateCart:
    """Create a cart for a registered customer or a guest session."""

    customer_id = Identifier()  # Optional for guest carts
    session_id = String(max_length=255)
    currency = String(max_length=3)


@pricing.command(part_of="Cart")
class SetShippingAddress:
    cart_id = Identifier(required=True)
    country = String(required=True, max_length=2)
    state = String(max_length=100)
    city = String(max_length=100)
    postal_code = String(max_length=20)
    line1 = String(max_length=255)
    line2 = String(max_length=255)


@pricing.command(part_of="Cart")
class SetBillingAddress:
    cart_id = Identifier(required=True)
    country = String(required=True, max_length=2)
    state = String(max_length=100)
    city = String(max_length=100)
    postal_code = String(max_length=20)
    line1 = String(max_length=255)
    line2 = String(max_length=255)


@pricing.command(part_of="Cart")
class SelectShippingMethod:
    cart_id = Identifier(required=True)
    shipping_method_id = Identifier(required=True)


@pricing.command(part_of="Cart")
class SetTaxExemption:
    cart_id = Identifier(required=True)
    is_tax_exempt = Boolean(required=True)
    tax_exemption_number = String(max_length=100)


@pricing.command(part_of="Cart")
class RecalculateCart:
    cart_id = Identifier(required=True)


def _address_from(command) -> Address:
    return Address.build(
        country=command.country,
        state=command.state,
        city=command.city,
        postal_code=command.postal_code,
        line1=command.line1,
        line2=command.line2,
    )


@pricing.command_handler(part_of=Cart)
class ManageCartHandler:
    @handle(CreateCart)
    def create_cart(self, command):
        cart = Cart.create(
            customer_id=command.customer_id,
            session_id=command.session_id,
            currency=(command.currency or getattr(current_domain, "DEFAULT_CURRENCY", "USD")).upper(),
        )
        current_domain.repository_for(Cart).add(cart)
        return str(cart.id)

    @handle(SetShippingAddress)
    def set_shipping_address(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        cart.set_shipping_address(_address_from(command))
        recalculate(cart)
        repo.add(cart)

    @handle(SetBillingAddress)
    def set_billing_address(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        cart.set_billing_address(_address_from(command))
        recalculate(cart)
        repo.add(cart)

    @handle(SelectShippingMethod)
    def select_shipping_method(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        if cart.shipping_address is None:
            raise ValidationError({"shipping_address": ["Set a shipping address before choosing a shipping method"]})

        option = next(
            (o for o in shipping_options_for(cart) if o.method_id == str(command.shipping_method_id)),
            None,
        )
        if option is None:
            raise ValidationError({"shipping_method_id": ["Shipping method is not available for this address"]})

        cart.select_shipping_method(command.shipping_method_id, option.name)
        recalculate(cart)
        repo.add(cart)

    @handle(SetTaxExemption)
    def set_tax_exemption(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        cart.set_tax_exemption(command.is_tax_exempt, command.tax_exemption_number)
        recalculate(cart)
        repo.add(cart)

    @handle(RecalculateCart)
    def recalculate_cart(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        recalculate(cart)
        repo.add(cart)
