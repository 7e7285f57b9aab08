"""Shared BDD fixtures and step definitions for the cart."""

from types import SimpleNamespace

import pytest
from ordering.cart.cart import ShoppingCart
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

CATALOGUE = {
    "p1": {"id": "p1", "name": "Organic Tomatoes", "price": 45.0, "farmer": "Green Valley Farm", "unit": "kg"},
    "p2": {"id": "p2", "name": "Fresh Spinach", "price": 60.0, "farmer": "Sunrise Organics", "unit": "bunch"},
    "p3": {"id": "p3", "name": "Alphonso Mangoes", "price": 305.0, "farmer": "Konkan Orchards", "unit": "dozen"},
}


def _product(product_id, price=None):
    record = CATALOGUE.get(product_id, {"name": f"Product {product_id}", "farmer": None, "unit": None})
    return SimpleNamespace(
        product_id=product_id,
        name=record["name"],
        price=price if price is not None else record["price"],
        original_price=None,
        primary_image=None,
        farmer_name=record["farmer"],
        unit=record["unit"],
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def make_product():
    """Build a catalogue product as the cart sees it."""
    return _product


@pytest.fixture()
def catalogue_records():
    return [dict(record) for record in CATALOGUE.values()]


@pytest.fixture()
def cart():
    return ShoppingCart.create()


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("an empty cart")
def _(cart):
    assert cart.is_empty


@given(parsers.cfparse("the cart holds {quantity:d} of a product priced {price:g}"))
def cart_holds(cart, quantity, price):
    cart.add_item(_product(f"item-{len(cart.lines) + 1}", price), quantity)


@given(parsers.cfparse('the coupon "{code}" was applied to the cart'))
def coupon_was_applied(cart, validator, code):
    cart.apply_coupon(code, validator)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("the cart action fails with a validation error")
def cart_action_fails(error):
    assert error["exc"] is not None, "Expected a validation error but none was raised"
    assert isinstance(error["exc"], ValidationError)


@then(parsers.cfparse("the cart subtotal is {amount:g}"))
def cart_subtotal(cart, amount):
    assert cart.subtotal == amount


@then(parsers.cfparse("the cart discount is {amount:g}"))
def cart_discount(cart, amount):
    assert cart.discount == amount


@then(parsers.cfparse("the delivery fee is {amount:g}"))
def delivery_fee(cart, amount):
    assert cart.delivery_fee == amount


@then(parsers.cfparse("the cart total is {amount:g}"))
def cart_total(cart, amount):
    assert cart.total == amount


@then("the cart is empty")
def cart_is_empty(cart):
    assert cart.is_empty


@then(parsers.cfparse('the cart holds {quantity:d} of product "{product_id}"'))
def cart_holds_product(cart, quantity, product_id):
    line = cart.get_line(product_id)
    assert line is not None, f"{product_id} is not in the cart"
    assert line.quantity == quantity
