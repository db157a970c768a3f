import pytest

from conftest import CUSTOMER_ADDRESS
from recupera_bot.core.errors import ValidationError
from recupera_bot.domain.services.cart_service import CartLifecycle, normalize_items
from recupera_bot.repo.models import MESSAGE_STATE_PENDING


ITEMS = [{"name": "Zapatillas", "price": 59.9, "quantity": 1}]


@pytest.fixture
def lifecycle(store, clock):
    return CartLifecycle(store, clock=clock)


def test_ingest_cart_creates_pending_unrecovered_cart(lifecycle, store, tenant, clock):
    cart_id = lifecycle.ingest_cart(tenant.id, "34 666 111 222", "https://tienda.test/r/1", ITEMS)

    cart = store.get_cart(cart_id)
    assert cart.tenant_id == tenant.id
    assert cart.customer_address == CUSTOMER_ADDRESS
    assert cart.recovered is False
    assert cart.message_state == MESSAGE_STATE_PENDING
    assert cart.created_at == clock.now
    assert cart.items == [{"name": "Zapatillas", "price": 59.9, "quantity": 1}]


def test_ingest_cart_accepts_spanish_item_fields(lifecycle, store, tenant):
    items = [{"nombre": "Camiseta", "precio": 19.5, "cantidad": 2}]

    cart_id = lifecycle.ingest_cart(tenant.id, "+34666111222", "https://tienda.test/r/2", items)

    assert store.get_cart(cart_id).items == [{"name": "Camiseta", "price": 19.5, "quantity": 2}]


@pytest.mark.parametrize(
    "phone, url, items, field",
    [
        (None, "https://tienda.test/r", ITEMS, "customer_phone"),
        ("34666111222", "", ITEMS, "recovery_url"),
        ("34666111222", "https://tienda.test/r", None, "items"),
        ("34666111222", "https://tienda.test/r", [], "items"),
    ],
)
def test_ingest_cart_rejects_missing_fields_without_writing(lifecycle, store, tenant, phone, url, items, field):
    with pytest.raises(ValidationError) as exc_info:
        lifecycle.ingest_cart(tenant.id, phone, url, items)

    assert field in exc_info.value.fields
    assert store.list_carts(tenant.id) == []


def test_normalize_items_rejects_items_without_name():
    with pytest.raises(ValidationError):
        normalize_items([{"price": 10}])
    with pytest.raises(ValidationError):
        normalize_items(["Zapatillas"])


def test_ingest_cart_does_not_deduplicate(lifecycle, store, tenant):
    lifecycle.ingest_cart(tenant.id, "34666111222", "https://tienda.test/r/1", ITEMS)
    lifecycle.ingest_cart(tenant.id, "34666111222", "https://tienda.test/r/2", ITEMS)

    carts = store.list_carts(tenant.id, CUSTOMER_ADDRESS)
    assert len(carts) == 2
    assert all(c.message_state == MESSAGE_STATE_PENDING for c in carts)


def test_mark_order_recovered_without_pending_cart_is_noop(lifecycle, store, tenant):
    lifecycle.ingest_cart(tenant.id, "34000000000", "https://tienda.test/r/1", ITEMS)
    before = store.list_carts(tenant.id)

    assert lifecycle.mark_order_recovered(tenant.id, "34666111222") is None

    assert store.list_carts(tenant.id) == before


def test_mark_order_recovered_matches_any_phone_format(lifecycle, store, tenant):
    cart_id = lifecycle.ingest_cart(tenant.id, "34 666 111 222", "https://tienda.test/r/1", ITEMS)

    assert lifecycle.mark_order_recovered(tenant.id, "+34-666-111-222") == cart_id

    cart = store.get_cart(cart_id)
    assert cart.recovered is True
    assert cart.recovered_at is not None


def test_mark_order_recovered_picks_oldest_and_is_idempotent(lifecycle, store, tenant, clock):
    first = lifecycle.ingest_cart(tenant.id, "34666111222", "https://tienda.test/r/1", ITEMS)
    clock.advance(minutes=10)
    second = lifecycle.ingest_cart(tenant.id, "34666111222", "https://tienda.test/r/2", ITEMS)

    assert lifecycle.mark_order_recovered(tenant.id, "34666111222") == first
    assert lifecycle.mark_order_recovered(tenant.id, "34666111222") == second
    assert lifecycle.mark_order_recovered(tenant.id, "34666111222") is None

    assert all(c.recovered for c in store.list_carts(tenant.id))


def test_mark_order_recovered_is_scoped_to_tenant(lifecycle, store, tenant):
    other = store.create_tenant(name="Otra", messaging_address="whatsapp:+34911000000", api_key="key-otra")
    cart_id = lifecycle.ingest_cart(other.id, "34666111222", "https://otra.test/r/1", ITEMS)

    assert lifecycle.mark_order_recovered(tenant.id, "34666111222") is None
    assert store.get_cart(cart_id).recovered is False


def test_mark_order_recovered_requires_phone(lifecycle, tenant):
    with pytest.raises(ValidationError):
        lifecycle.mark_order_recovered(tenant.id, None)
    with pytest.raises(ValidationError):
        lifecycle.mark_order_recovered(tenant.id, "sin numero")
