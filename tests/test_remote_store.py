"""
Tests for the remote cart adapter over the cart / cart_item relations.
"""
import asyncio

import pytest

from cartsync.exceptions import RemoteUnavailableError
from cartsync.remote_store import RemoteCartAdapter


class TestEnsureCart:

    @pytest.mark.asyncio
    async def test_repeated_calls_return_same_cart(self, remote: RemoteCartAdapter):
        first = await remote.ensure_cart("user-1")
        second = await remote.ensure_cart("user-1")

        assert first == second

    @pytest.mark.asyncio
    async def test_concurrent_calls_do_not_duplicate(self, remote: RemoteCartAdapter):
        ids = await asyncio.gather(*(remote.ensure_cart("user-1") for _ in range(5)))

        assert len(set(ids)) == 1

    @pytest.mark.asyncio
    async def test_users_get_distinct_carts(self, remote: RemoteCartAdapter):
        assert await remote.ensure_cart("user-1") != await remote.ensure_cart("user-2")

    @pytest.mark.asyncio
    async def test_header_row_records_user(self, remote: RemoteCartAdapter, remote_redis):
        cart_id = await remote.ensure_cart("user-1")

        header = await remote_redis.hgetall(f"{remote.scripts.cart_key_prefix()}{cart_id}")

        assert header == {"id": str(cart_id), "user_id": "user-1"}


class TestItems:

    @pytest.mark.asyncio
    async def test_upsert_inserts_then_updates_same_row(self, remote: RemoteCartAdapter):
        # Arrange
        cart_id = await remote.ensure_cart("user-1")

        # Act
        inserted = await remote.upsert_item(cart_id, "A", 1)
        updated = await remote.upsert_item(cart_id, "A", 4)

        # Assert
        assert inserted == updated
        lines = await remote.list_items(cart_id)
        assert [(line.product_id, line.quantity, line.remote_row_id) for line in lines] == [("A", 4, inserted)]

    @pytest.mark.asyncio
    async def test_upsert_rejects_non_positive_quantity(self, remote: RemoteCartAdapter):
        cart_id = await remote.ensure_cart("user-1")

        with pytest.raises(ValueError):
            await remote.upsert_item(cart_id, "A", 0)

    @pytest.mark.asyncio
    async def test_list_items_joins_catalog(self, remote: RemoteCartAdapter):
        cart_id = await remote.ensure_cart("user-1")
        await remote.upsert_item(cart_id, "A", 2)
        await remote.upsert_item(cart_id, "B", 1)

        lines = {line.product_id: line for line in await remote.list_items(cart_id)}

        assert lines["A"].product.name == "Product A"
        assert lines["B"].product.stock == 3

    @pytest.mark.asyncio
    async def test_list_items_drops_rows_for_deleted_products(self, remote: RemoteCartAdapter, catalog):
        # Arrange
        cart_id = await remote.ensure_cart("user-1")
        await remote.upsert_item(cart_id, "A", 2)
        await remote.upsert_item(cart_id, "B", 1)
        catalog.remove("B")

        # Act
        lines = await remote.list_items(cart_id)

        # Assert
        assert [line.product_id for line in lines] == ["A"]

    @pytest.mark.asyncio
    async def test_get_item_missing_row_is_none(self, remote: RemoteCartAdapter):
        cart_id = await remote.ensure_cart("user-1")

        assert await remote.get_item(cart_id, "A") is None

    @pytest.mark.asyncio
    async def test_get_item_returns_row(self, remote: RemoteCartAdapter):
        cart_id = await remote.ensure_cart("user-1")
        row_id = await remote.upsert_item(cart_id, "A", 3)

        line = await remote.get_item(cart_id, "A")

        assert line.quantity == 3
        assert line.remote_row_id == row_id

    @pytest.mark.asyncio
    async def test_delete_missing_row_is_noop(self, remote: RemoteCartAdapter):
        cart_id = await remote.ensure_cart("user-1")

        await remote.delete_item(cart_id, "A")

        assert await remote.list_items(cart_id) == []

    @pytest.mark.asyncio
    async def test_delete_then_reinsert_creates_new_row(self, remote: RemoteCartAdapter):
        cart_id = await remote.ensure_cart("user-1")
        first = await remote.upsert_item(cart_id, "A", 1)

        await remote.delete_item(cart_id, "A")
        second = await remote.upsert_item(cart_id, "A", 1)

        assert second != first
        assert len(await remote.list_items(cart_id)) == 1

    @pytest.mark.asyncio
    async def test_clear_items_only_touches_one_cart(self, remote: RemoteCartAdapter):
        # Arrange
        mine = await remote.ensure_cart("user-1")
        theirs = await remote.ensure_cart("user-2")
        await remote.upsert_item(mine, "A", 1)
        await remote.upsert_item(mine, "B", 1)
        await remote.upsert_item(theirs, "A", 2)

        # Act
        removed = await remote.clear_items(mine)

        # Assert
        assert removed == 2
        assert await remote.list_items(mine) == []
        assert [line.quantity for line in await remote.list_items(theirs)] == [2]


class TestFailures:

    @pytest.mark.asyncio
    async def test_connection_failure_raises_remote_unavailable(self, remote: RemoteCartAdapter, remote_outage):
        remote_outage.start()

        with pytest.raises(RemoteUnavailableError):
            await remote.ensure_cart("user-1")

    @pytest.mark.asyncio
    async def test_missing_row_is_not_a_failure(self, remote: RemoteCartAdapter):
        """A lookup with no matching row returns normally"""
        cart_id = await remote.ensure_cart("user-1")

        assert await remote.get_item(cart_id, "nope") is None
