"""Tests for persisting the cart and wishlist to a key/value store."""

import json
from types import SimpleNamespace

from ordering.cart.cart import ShoppingCart
from ordering.storage import CartStorage, JsonFileStore, restore_cart


def _product(product_id, price, original_price=None):
    return SimpleNamespace(
        product_id=product_id,
        name=f"Product {product_id}",
        price=price,
        original_price=original_price,
        primary_image=f"/img/{product_id}.jpg",
        farmer_name="Green Valley Farm",
        unit="kg",
    )


class TestCartStorage:
    def test_cart_saved_as_json_array(self):
        store = {}
        cart = ShoppingCart.create()
        cart.add_item(_product("p1", 45.0, original_price=60.0), 2)

        CartStorage(store).save_cart(cart.to_records())

        assert json.loads(store["cart"]) == [
            {
                "id": "p1",
                "name": "Product p1",
                "price": 45.0,
                "image": "/img/p1.jpg",
                "quantity": 2,
                "farmer": "Green Valley Farm",
                "unit": "kg",
                "originalPrice": 60.0,
            }
        ]

    def test_cart_round_trips_through_storage(self):
        storage = CartStorage({})
        cart = ShoppingCart.create()
        cart.add_item(_product("p1", 45.0, original_price=60.0), 2)
        cart.add_item(_product("p2", 60.0), 1)
        storage.save_cart(cart.to_records())

        restored = ShoppingCart.create()
        restore_cart(restored, storage)

        assert restored.to_records() == cart.to_records()
        assert restored.subtotal == 150.0

    def test_missing_key_loads_empty(self):
        assert CartStorage({}).load_cart() == []
        assert CartStorage({}).load_wishlist() == []

    def test_malformed_json_loads_empty(self):
        storage = CartStorage({"cart": "{not json", "wishlist": '{"id": 1}'})
        assert storage.load_cart() == []
        assert storage.load_wishlist() == []

    def test_unusable_lines_skipped(self):
        lines = [
            {"id": "ok", "name": "Fine", "price": 10.0, "quantity": 1},
            {"id": "zero", "name": "Zero", "price": 10.0, "quantity": 0},
            {"id": "free", "name": "Free", "price": 0, "quantity": 1},
            {"name": "No id", "price": 10.0, "quantity": 1},
        ]
        storage = CartStorage({"cart": json.dumps(lines)})
        assert [line["id"] for line in storage.load_cart()] == ["ok"]

    def test_duplicate_lines_discard_the_stored_cart(self):
        line = {"id": "p1", "name": "Dup", "price": 10.0, "quantity": 1}
        storage = CartStorage({"cart": json.dumps([line, line])})
        cart = ShoppingCart.create()
        restore_cart(cart, storage)
        assert cart.is_empty

    def test_wishlist_saved_under_its_own_key(self):
        store = {}
        storage = CartStorage(store)
        storage.save_wishlist([{"id": "p1", "name": "A", "price": 10.0}])
        assert "cart" not in store
        assert storage.load_wishlist() == [{"id": "p1", "name": "A", "price": 10.0}]


class TestJsonFileStore:
    def test_values_survive_a_new_store(self, tmp_path):
        path = tmp_path / "state" / "storefront.json"
        CartStorage(JsonFileStore(path)).save_cart([{"id": "p1", "name": "A", "price": 10.0, "quantity": 3}])

        loaded = CartStorage(JsonFileStore(path)).load_cart()
        assert loaded == [{"id": "p1", "name": "A", "price": 10.0, "quantity": 3}]

    def test_mapping_behaviour(self, tmp_path):
        store = JsonFileStore(tmp_path / "store.json")
        assert len(store) == 0
        store["a"] = "1"
        store["b"] = "2"
        del store["a"]
        assert dict(store) == {"b": "2"}

    def test_corrupt_file_reads_as_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("garbage", encoding="utf-8")
        assert dict(JsonFileStore(path)) == {}
