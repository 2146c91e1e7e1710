"""
Lua scripts for atomic operations on the remote cart store.

The store keeps two relations in Redis:

    cart       {p}cart:{id}        hash {id, user_id}
               {p}cart:user:{uid}  -> id                  (user_id unique)
    cart_item  {p}cart_item:{id}   hash {id, cart_id, product_id, quantity}
               {p}cart:{cid}:items hash product_id -> id  ((cart_id, product_id) unique)

Every look-up-before-insert runs inside a single script so repeated or
concurrent calls cannot create duplicate rows.
"""
from typing import List

from cartsync.redis_client import AsyncRedisClient

# Return the cart id for a user, creating the header row if needed
ENSURE_CART_SCRIPT = """
local user_key = KEYS[1]
local seq_key = KEYS[2]
local cart_prefix = ARGV[1]
local user_id = ARGV[2]

local existing = redis.call('GET', user_key)
if existing then
    return tonumber(existing)
end

local cart_id = redis.call('INCR', seq_key)
redis.call('HSET', cart_prefix .. cart_id, 'id', cart_id, 'user_id', user_id)
redis.call('SET', user_key, cart_id)
return cart_id
"""

# Update the row for (cart_id, product_id) or insert one; returns the row id
UPSERT_ITEM_SCRIPT = """
local index_key = KEYS[1]
local seq_key = KEYS[2]
local item_prefix = ARGV[1]
local cart_id = ARGV[2]
local product_id = ARGV[3]
local quantity = tonumber(ARGV[4])

-- cart_item.quantity is a positive integer
if not quantity or quantity < 1 then
    return redis.error_reply('INVALID_QUANTITY')
end

local row_id = redis.call('HGET', index_key, product_id)
if row_id then
    redis.call('HSET', item_prefix .. row_id, 'quantity', quantity)
    return tonumber(row_id)
end

row_id = redis.call('INCR', seq_key)
redis.call('HSET', item_prefix .. row_id,
    'id', row_id,
    'cart_id', cart_id,
    'product_id', product_id,
    'quantity', quantity)
redis.call('HSET', index_key, product_id, row_id)
return row_id
"""

# Delete the row for (cart_id, product_id); returns 0 when there was none
DELETE_ITEM_SCRIPT = """
local index_key = KEYS[1]
local item_prefix = ARGV[1]
local product_id = ARGV[2]

local row_id = redis.call('HGET', index_key, product_id)
if not row_id then
    return 0
end

redis.call('DEL', item_prefix .. row_id)
redis.call('HDEL', index_key, product_id)
return 1
"""

# Delete every row of a cart; returns the number of rows removed
CLEAR_ITEMS_SCRIPT = """
local index_key = KEYS[1]
local item_prefix = ARGV[1]

local rows = redis.call('HVALS', index_key)
for _, row_id in ipairs(rows) do
    redis.call('DEL', item_prefix .. row_id)
end
redis.call('DEL', index_key)
return #rows
"""

# Flat list [row_id, product_id, quantity, ...] for one cart
LIST_ITEMS_SCRIPT = """
local index_key = KEYS[1]
local item_prefix = ARGV[1]

local rows = redis.call('HGETALL', index_key)
local result = {}
for i = 1, #rows, 2 do
    local row = redis.call('HMGET', item_prefix .. rows[i + 1], 'id', 'product_id', 'quantity')
    if row[1] then
        table.insert(result, row[1])
        table.insert(result, row[2])
        table.insert(result, row[3])
    end
end
return result
"""


class AtomicScripts:
    """Executes the store scripts through the async wrapper's retry logic"""

    def __init__(self, redis_wrapper: AsyncRedisClient, prefix: str):
        self.redis_wrapper = redis_wrapper
        self.prefix = prefix

    def cart_key_prefix(self) -> str:
        return f"{self.prefix}cart:"

    def item_key_prefix(self) -> str:
        return f"{self.prefix}cart_item:"

    def user_index_key(self, user_id: str) -> str:
        return f"{self.prefix}cart:user:{user_id}"

    def items_index_key(self, cart_id: int) -> str:
        return f"{self.prefix}cart:{cart_id}:items"

    async def ensure_cart(self, user_id: str) -> int:
        """Execute ensure cart script"""
        result = await self.redis_wrapper.eval(
            ENSURE_CART_SCRIPT,
            2,
            self.user_index_key(user_id),
            f"{self.prefix}cart:seq",
            self.cart_key_prefix(),
            user_id
        )
        return int(result)

    async def upsert_item(self, cart_id: int, product_id: str, quantity: int) -> int:
        """Execute upsert item script"""
        result = await self.redis_wrapper.eval(
            UPSERT_ITEM_SCRIPT,
            2,
            self.items_index_key(cart_id),
            f"{self.prefix}cart_item:seq",
            self.item_key_prefix(),
            str(cart_id),
            product_id,
            str(quantity)
        )
        return int(result)

    async def delete_item(self, cart_id: int, product_id: str) -> bool:
        """Execute delete item script"""
        result = await self.redis_wrapper.eval(
            DELETE_ITEM_SCRIPT,
            1,
            self.items_index_key(cart_id),
            self.item_key_prefix(),
            product_id
        )
        return int(result) > 0

    async def clear_items(self, cart_id: int) -> int:
        """Execute clear items script"""
        result = await self.redis_wrapper.eval(
            CLEAR_ITEMS_SCRIPT,
            1,
            self.items_index_key(cart_id),
            self.item_key_prefix()
        )
        return int(result)

    async def list_items(self, cart_id: int) -> List[str]:
        """Execute list items script"""
        result = await self.redis_wrapper.eval(
            LIST_ITEMS_SCRIPT,
            1,
            self.items_index_key(cart_id),
            self.item_key_prefix()
        )
        return list(result or [])
