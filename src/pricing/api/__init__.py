"""Pricing domain API package."""

from pricing.api.routes import cart_router, checkout_router, discount_router, shipping_router, tax_router

__all__ = ["cart_router", "discount_router", "tax_router", "shipping_router", "checkout_router"]
