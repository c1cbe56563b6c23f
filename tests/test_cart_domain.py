"""
Tests for the cart aggregate and line identity
"""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest

from cartmerge.domain.cart import Cart, line_key
from cartmerge.domain.errors import InvalidCartStateError
from tests.helpers import T0, make_line


class TestLineKey:

    def test_same_product_and_variant_match(self):
        product, variant = uuid.uuid4(), uuid.uuid4()
        a = make_line(product_id=product, variant_id=variant, unit_price="1.00")
        b = make_line(product_id=product, variant_id=variant, unit_price="2.00")

        assert line_key(a) == line_key(b)

    def test_missing_variant_is_its_own_value(self):
        product = uuid.uuid4()
        plain = make_line(product_id=product)
        variant = make_line(product_id=product, variant_id=uuid.uuid4())

        assert line_key(plain) == (product, None)
        assert line_key(plain) != line_key(variant)

    def test_different_products_never_match(self):
        assert line_key(make_line()) != line_key(make_line())


class TestCartLine:

    def test_line_total_is_derived(self):
        line = make_line(quantity=3, unit_price="2.50")
        assert line.line_total == Decimal("7.50")

    @pytest.mark.parametrize("price, rounded", [("9.999", "10.00"), ("0.005", "0.01"), ("1.234", "1.23"), ("3", "3.00")])
    def test_unit_price_rounded_to_cents(self, price, rounded):
        line = make_line(quantity=3, unit_price=price)

        assert line.unit_price == Decimal(rounded)
        assert line.unit_price.as_tuple().exponent == -2
        assert line.line_total == Decimal(rounded) * 3

    def test_set_quantity_recomputes_total(self):
        line = make_line(quantity=1, unit_price="4.00")
        line.set_quantity(5)

        assert line.quantity == 5
        assert line.line_total == Decimal("20.00")

    def test_increase_quantity(self):
        line = make_line(quantity=2, unit_price="10.00")
        line.increase_quantity(3)

        assert line.quantity == 5
        assert line.line_total == Decimal("50.00")

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_quantity_must_be_positive(self, quantity):
        with pytest.raises(ValueError):
            make_line(quantity=quantity)

    def test_negative_price_rejected(self):
        with pytest.raises(ValueError):
            make_line(unit_price="-1.00")


class TestCartOwnership:

    def test_new_guest_cart(self):
        cart = Cart.new_guest("sess-1", T0, timedelta(days=30))

        assert cart.is_guest
        assert not cart.is_customer
        assert cart.expires_at == T0 + timedelta(days=30)
        cart.ensure_valid_ownership()

    def test_new_customer_cart_has_no_expiry(self):
        cart = Cart.new_customer(uuid.uuid4(), T0)

        assert cart.is_customer
        assert cart.expires_at is None
        cart.ensure_valid_ownership()

    def test_both_owners_is_invalid(self):
        cart = Cart(session_id="sess-1", customer_id=uuid.uuid4())
        with pytest.raises(InvalidCartStateError):
            cart.ensure_valid_ownership()

    def test_no_owner_is_invalid(self):
        with pytest.raises(InvalidCartStateError):
            Cart().ensure_valid_ownership()

    def test_promote_to_customer(self):
        cart = Cart.new_guest("sess-1", T0, timedelta(days=30))
        customer_id = uuid.uuid4()
        later = T0 + timedelta(hours=1)

        cart.promote_to_customer(customer_id, later)

        assert cart.customer_id == customer_id
        assert cart.session_id is None
        assert cart.expires_at is None
        assert cart.updated_at == later
        cart.ensure_valid_ownership()


class TestCartTotals:

    def test_subtotal_and_counts(self):
        cart = Cart.new_customer(uuid.uuid4(), T0)
        cart.attach_line(make_line(quantity=2, unit_price="10.00"))
        cart.attach_line(make_line(quantity=1, unit_price="5.50"))

        assert cart.subtotal == Decimal("25.50")
        assert cart.item_count == 3
        assert cart.unique_item_count == 2
        assert all(line.cart_id == cart.id for line in cart.lines)

    def test_empty_cart(self):
        cart = Cart.new_customer(uuid.uuid4(), T0)
        assert cart.is_empty
        assert cart.subtotal == Decimal("0.00")

    def test_expiry_boundary_is_inclusive(self):
        cart = Cart.new_guest("sess-1", T0, timedelta(days=30))

        assert not cart.is_expired(T0 + timedelta(days=29))
        assert cart.is_expired(T0 + timedelta(days=30))

    def test_abandoned_needs_lines(self):
        cart = Cart.new_customer(uuid.uuid4(), T0)
        cutoff = T0 + timedelta(days=1)
        assert not cart.is_abandoned(cutoff)

        cart.attach_line(make_line())
        assert cart.is_abandoned(cutoff)

    def test_remove_line(self):
        cart = Cart.new_customer(uuid.uuid4(), T0)
        line = make_line()
        cart.attach_line(line)

        assert cart.remove_line(line.id)
        assert not cart.remove_line(line.id)
        assert cart.is_empty
