"""Cart storage backends.

A cart maps entry keys to ``CartEntry`` values. The entry key combines the
product id with the selected attribute map, so the same product in size M
and size L are two entries. Carts expire after ``CART_TTL_SECONDS`` without
a write.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional

from ..common.config import settings
from ..common.redis_client import get_redis

_logger = logging.getLogger(__name__)


def canonical_attributes(attributes: Optional[Mapping[str, str]]) -> str:
    return json.dumps(dict(attributes or {}), sort_keys=True, separators=(",", ":"))


def entry_key(product_id: int, attributes: Optional[Mapping[str, str]] = None) -> str:
    return f"{product_id}|{canonical_attributes(attributes)}"


@dataclass
class CartEntry:
    product_id: int
    quantity: int
    attributes: Dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return entry_key(self.product_id, self.attributes)


class CartStore:
    async def add(self, cart_id: str, product_id: int, quantity: int, attributes: Mapping[str, str]) -> CartEntry:
        raise NotImplementedError

    async def set(self, cart_id: str, product_id: int, attributes: Mapping[str, str], quantity: int) -> Optional[CartEntry]:
        raise NotImplementedError

    async def remove(self, cart_id: str, product_id: int, attributes: Mapping[str, str]) -> bool:
        raise NotImplementedError

    async def clear(self, cart_id: str) -> None:
        raise NotImplementedError

    async def entries(self, cart_id: str) -> List[CartEntry]:
        raise NotImplementedError


@dataclass
class _MemoryCart:
    entries: Dict[str, CartEntry] = field(default_factory=dict)
    touched_at: float = 0.0


class MemoryCartStore(CartStore):
    """Per-process carts with a per-cart lock and a sliding TTL."""

    def __init__(self, ttl_seconds: int = settings.CART_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._carts: Dict[str, _MemoryCart] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, cart_id: str) -> asyncio.Lock:
        lock = self._locks.get(cart_id)
        if lock is None:
            lock = self._locks[cart_id] = asyncio.Lock()
        return lock

    def _expired(self, cart: _MemoryCart) -> bool:
        return self._ttl > 0 and self._clock() - cart.touched_at >= self._ttl

    def _get(self, cart_id: str) -> Optional[_MemoryCart]:
        cart = self._carts.get(cart_id)
        if cart is not None and self._expired(cart):
            self._drop(cart_id)
            return None
        return cart

    def _drop(self, cart_id: str) -> None:
        self._carts.pop(cart_id, None)
        lock = self._locks.get(cart_id)
        if lock is not None and not lock.locked():
            del self._locks[cart_id]

    def _touch(self, cart_id: str) -> _MemoryCart:
        cart = self._get(cart_id)
        if cart is None:
            cart = self._carts[cart_id] = _MemoryCart()
        cart.touched_at = self._clock()
        return cart

    def evict_expired(self) -> int:
        expired = [cid for cid, cart in self._carts.items() if self._expired(cart)]
        for cart_id in expired:
            self._drop(cart_id)
        if expired:
            _logger.debug("Evicted expired carts | count=%s", len(expired))
        return len(expired)

    async def add(self, cart_id, product_id, quantity, attributes):
        async with self._lock(cart_id):
            cart = self._touch(cart_id)
            key = entry_key(product_id, attributes)
            entry = cart.entries.get(key)
            if entry is None:
                entry = cart.entries[key] = CartEntry(product_id, 0, dict(attributes or {}))
            entry.quantity += quantity
            return CartEntry(entry.product_id, entry.quantity, dict(entry.attributes))

    async def set(self, cart_id, product_id, attributes, quantity):
        async with self._lock(cart_id):
            cart = self._touch(cart_id)
            key = entry_key(product_id, attributes)
            if quantity <= 0:
                cart.entries.pop(key, None)
                return None
            entry = cart.entries[key] = CartEntry(product_id, quantity, dict(attributes or {}))
            return CartEntry(entry.product_id, entry.quantity, dict(entry.attributes))

    async def remove(self, cart_id, product_id, attributes):
        async with self._lock(cart_id):
            cart = self._get(cart_id)
            if cart is None:
                return False
            return cart.entries.pop(entry_key(product_id, attributes), None) is not None

    async def clear(self, cart_id):
        async with self._lock(cart_id):
            self._carts.pop(cart_id, None)
        self._drop(cart_id)

    async def entries(self, cart_id):
        cart = self._get(cart_id)
        if cart is None:
            return []
        return [CartEntry(e.product_id, e.quantity, dict(e.attributes)) for e in cart.entries.values()]


class RedisCartStore(CartStore):
    """Carts as two Redis hashes: quantities (HINCRBY) and attribute maps.

    Each mutation is one MULTI/EXEC pipeline, so a concurrent ``set`` to zero
    cannot land between the quantity write and the attribute write, and
    concurrent adds for the same entry never lose an update.
    """

    def __init__(self, redis_factory=get_redis, ttl_seconds: int = settings.CART_TTL_SECONDS):
        self._redis_factory = redis_factory
        self._ttl = ttl_seconds

    @staticmethod
    def _qty_key(cart_id: str) -> str:
        return f"cart:{cart_id}:qty"

    @staticmethod
    def _attrs_key(cart_id: str) -> str:
        return f"cart:{cart_id}:attrs"

    def _queue_ttl(self, pipe, cart_id: str) -> None:
        if self._ttl > 0:
            pipe.expire(self._qty_key(cart_id), self._ttl)
            pipe.expire(self._attrs_key(cart_id), self._ttl)

    async def add(self, cart_id, product_id, quantity, attributes):
        r = await self._redis_factory()
        key = entry_key(product_id, attributes)
        async with r.pipeline(transaction=True) as pipe:
            pipe.hincrby(self._qty_key(cart_id), key, quantity)
            pipe.hset(self._attrs_key(cart_id), key, canonical_attributes(attributes))
            self._queue_ttl(pipe, cart_id)
            results = await pipe.execute()
        return CartEntry(product_id, int(results[0]), dict(attributes or {}))

    async def set(self, cart_id, product_id, attributes, quantity):
        r = await self._redis_factory()
        key = entry_key(product_id, attributes)
        async with r.pipeline(transaction=True) as pipe:
            if quantity <= 0:
                pipe.hdel(self._qty_key(cart_id), key)
                pipe.hdel(self._attrs_key(cart_id), key)
            else:
                pipe.hset(self._qty_key(cart_id), key, quantity)
                pipe.hset(self._attrs_key(cart_id), key, canonical_attributes(attributes))
                self._queue_ttl(pipe, cart_id)
            await pipe.execute()
        if quantity <= 0:
            return None
        return CartEntry(product_id, quantity, dict(attributes or {}))

    async def remove(self, cart_id, product_id, attributes):
        r = await self._redis_factory()
        key = entry_key(product_id, attributes)
        async with r.pipeline(transaction=True) as pipe:
            pipe.hdel(self._qty_key(cart_id), key)
            pipe.hdel(self._attrs_key(cart_id), key)
            removed, _ = await pipe.execute()
        return int(removed) > 0

    async def clear(self, cart_id):
        r = await self._redis_factory()
        await r.delete(self._qty_key(cart_id), self._attrs_key(cart_id))

    async def entries(self, cart_id):
        r = await self._redis_factory()
        quantities = await r.hgetall(self._qty_key(cart_id))
        attributes = await r.hgetall(self._attrs_key(cart_id))
        result = []
        for key, raw_qty in quantities.items():
            qty = int(raw_qty)
            if qty <= 0:
                continue
            product_id = int(key.split("|", 1)[0])
            attrs = json.loads(attributes.get(key) or "{}")
            result.append(CartEntry(product_id, qty, attrs))
        return result


async def eviction_worker(store: MemoryCartStore, stop_event: asyncio.Event, interval: float) -> None:
    """Drop idle carts every ``interval`` seconds until ``stop_event`` is set."""
    _logger.info("Cart eviction worker started | interval=%ss", interval)
    while not stop_event.is_set():
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            store.evict_expired()
    _logger.info("Cart eviction worker stopped")


_store: Optional[CartStore] = None


def get_cart_store() -> CartStore:
    global _store
    if _store is None:
        backend = settings.cart_backend
        if backend == "memory":
            _store = MemoryCartStore()
        elif backend == "redis":
            _store = RedisCartStore()
        else:
            raise ValueError(f"Unknown CART_BACKEND: {settings.CART_BACKEND!r}")
        _logger.info("Cart store ready | backend=%s ttl=%ss", backend, settings.CART_TTL_SECONDS)
    return _store
