# tests/test_cart_ledger.py
from decimal import Decimal

import pytest

from shop_assistant.errors import NotFoundError, ValidationError

from conftest import SHOP, FakeSource, make_product

CONV = "conv-1"


def _variant_id(pid):
    return f"gid://shopify/ProductVariant/{pid}1"


@pytest.fixture
def stocked(catalog):
    catalog.upsert(SHOP, make_product("1", title="Classic Tee", price="19.99"))
    catalog.upsert(SHOP, make_product("2", title="Sticker", price="5.005"))
    return catalog


def test_add_snapshots_price_title_and_image(ledger, stocked):
    item = ledger.add(SHOP, CONV, "gid://shopify/Product/1", _variant_id(1), 2)

    assert item.price == Decimal("19.99")
    assert item.quantity == 2
    assert item.title == "Classic Tee - Red / M"
    assert item.image_url == "https://cdn.test/1.jpg"
    assert ledger.list(CONV) == [item]


def test_total_rounds_half_up_to_cents(ledger, stocked):
    ledger.add(SHOP, CONV, "gid://shopify/Product/1", _variant_id(1), 2)
    ledger.add(SHOP, CONV, "gid://shopify/Product/2", _variant_id(2), 1)

    assert ledger.total(CONV) == Decimal("44.99")
    assert str(ledger.total(CONV)) == "44.99"


def test_total_of_empty_cart_is_zero(ledger):
    assert ledger.total(CONV) == Decimal("0.00")


def test_price_is_not_repriced_after_catalog_change(ledger, stocked):
    ledger.add(SHOP, CONV, "gid://shopify/Product/1", _variant_id(1), 1)
    stocked.upsert(SHOP, make_product("1", title="Classic Tee", price="29.99"))

    assert ledger.list(CONV)[0].price == Decimal("19.99")


def test_add_unknown_product_or_variant(ledger, stocked):
    with pytest.raises(NotFoundError):
        ledger.add(SHOP, CONV, "gid://shopify/Product/404", _variant_id(1))
    with pytest.raises(NotFoundError):
        ledger.add(SHOP, CONV, "gid://shopify/Product/1", "gid://shopify/ProductVariant/404")


def test_add_checks_the_callers_tenant(ledger, stocked):
    with pytest.raises(NotFoundError):
        ledger.add("other.myshopify.com", CONV, "gid://shopify/Product/1", _variant_id(1))


def test_add_rejects_quantity_below_one(ledger, stocked):
    with pytest.raises(ValidationError):
        ledger.add(SHOP, CONV, "gid://shopify/Product/1", _variant_id(1), 0)


def test_update_quantity(ledger, stocked):
    item = ledger.add(SHOP, CONV, "gid://shopify/Product/1", _variant_id(1), 1)

    updated = ledger.update_quantity(CONV, item.id, 4)

    assert updated.quantity == 4
    assert updated.price == item.price
    assert ledger.list(CONV)[0].quantity == 4


def test_update_quantity_rejects_below_one(ledger, stocked):
    item = ledger.add(SHOP, CONV, "gid://shopify/Product/1", _variant_id(1), 3)
    with pytest.raises(ValidationError):
        ledger.update_quantity(CONV, item.id, 0)
    assert ledger.list(CONV)[0].quantity == 3


def test_update_quantity_missing_or_foreign_item(ledger, stocked):
    item = ledger.add(SHOP, CONV, "gid://shopify/Product/1", _variant_id(1), 1)
    with pytest.raises(NotFoundError):
        ledger.update_quantity(CONV, "nope", 2)
    with pytest.raises(NotFoundError):
        ledger.update_quantity("conv-2", item.id, 2)


def test_remove_is_idempotent(ledger, stocked):
    item = ledger.add(SHOP, CONV, "gid://shopify/Product/1", _variant_id(1), 1)

    assert ledger.remove(CONV, item.id) is True
    assert ledger.remove(CONV, item.id) is False
    assert ledger.list(CONV) == []


def test_remove_ignores_other_conversations_items(ledger, stocked):
    item = ledger.add(SHOP, CONV, "gid://shopify/Product/1", _variant_id(1), 1)
    assert ledger.remove("conv-2", item.id) is False
    assert len(ledger.list(CONV)) == 1


def test_carts_are_per_conversation(ledger, stocked):
    ledger.add(SHOP, CONV, "gid://shopify/Product/1", _variant_id(1), 1)
    ledger.add(SHOP, "conv-2", "gid://shopify/Product/2", _variant_id(2), 1)
    assert [i.product_id for i in ledger.list(CONV)] == ["gid://shopify/Product/1"]


def test_checkout_sends_ledger_lines(ledger, stocked):
    ledger.add(SHOP, CONV, "gid://shopify/Product/1", _variant_id(1), 2)
    source = FakeSource()

    session = ledger.checkout(CONV, source)

    assert session.checkout_url.startswith("https://")
    assert source.carts == [[{"variant_id": _variant_id(1), "quantity": 2}]]


def test_checkout_of_empty_cart_is_rejected(ledger):
    with pytest.raises(ValidationError):
        ledger.checkout(CONV, FakeSource())
