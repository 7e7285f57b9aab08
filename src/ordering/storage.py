"""Local persistence for the cart and wishlist.

Both are kept as JSON arrays under the keys ``cart`` and ``wishlist`` of a
string key/value store, one element per line:

    {"id", "name", "price", "image", "quantity", "farmer", "unit", "originalPrice"}

The store is any ``MutableMapping[str, str]``: a plain dict in tests,
``JsonFileStore`` when state should survive a restart.
"""

import json
from collections.abc import Iterator, MutableMapping
from pathlib import Path

from protean.exceptions import ValidationError

from ordering.domain import logger

CART_KEY = "cart"
WISHLIST_KEY = "wishlist"


class JsonFileStore(MutableMapping):
    """Key/value store kept as a single JSON object on disk.

    Every write rewrites the whole file.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError:
            logger.warning("storage.file_corrupt", path=str(self.path))
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def __getitem__(self, key: str) -> str:
        return self._read()[key]

    def __setitem__(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def __delitem__(self, key: str) -> None:
        data = self._read()
        del data[key]
        self._write(data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._read())

    def __len__(self) -> int:
        return len(self._read())


class CartStorage:
    def __init__(self, store: MutableMapping | None = None):
        self.store = store if store is not None else {}

    def save_cart(self, records: list[dict]) -> None:
        self._save(CART_KEY, records)

    def load_cart(self) -> list[dict]:
        """Stored cart lines. Lines that are not usable are skipped."""
        return [record for record in self._load(CART_KEY) if _is_cart_line(record)]

    def save_wishlist(self, records: list[dict]) -> None:
        self._save(WISHLIST_KEY, records)

    def load_wishlist(self) -> list[dict]:
        return [record for record in self._load(WISHLIST_KEY) if isinstance(record, dict) and "id" in record]

    def _save(self, key: str, records: list[dict]) -> None:
        self.store[key] = json.dumps(records)

    def _load(self, key: str) -> list:
        raw = self.store.get(key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("storage.malformed", key=key)
            return []
        if not isinstance(data, list):
            logger.warning("storage.malformed", key=key)
            return []
        return data


def _is_cart_line(record) -> bool:
    if not isinstance(record, dict) or "id" not in record:
        return False
    quantity = record.get("quantity")
    price = record.get("price")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        logger.warning("storage.line_skipped", product_id=record.get("id"), reason="quantity")
        return False
    if not isinstance(price, (int, float)) or price <= 0:
        logger.warning("storage.line_skipped", product_id=record.get("id"), reason="price")
        return False
    return True


def restore_cart(cart, storage: CartStorage) -> None:
    """Load the stored lines into ``cart``, replacing whatever it holds."""
    try:
        cart.replace_lines(storage.load_cart())
    except ValidationError as exc:
        logger.warning("storage.cart_discarded", errors=exc.messages)
        cart.clear()
