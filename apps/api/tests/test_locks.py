import asyncio
import gc

import pytest

from compliance.core.errors import ConcurrencyConflictError
from compliance.services.locks import PropertyLockRegistry


@pytest.mark.asyncio
async def test_idle_locks_are_dropped() -> None:
    registry = PropertyLockRegistry()

    async with registry.hold("prop-1", timeout=1):
        assert registry.is_locked("prop-1") is True
        assert len(registry) == 1

    gc.collect()
    assert registry.is_locked("prop-1") is False
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_properties_do_not_contend() -> None:
    registry = PropertyLockRegistry()

    async with registry.hold("prop-1", timeout=1):
        async with registry.hold("prop-2", timeout=0.05):
            assert registry.is_locked("prop-2") is True
        with pytest.raises(ConcurrencyConflictError):
            async with registry.hold("prop-1", timeout=0.05):
                pass


@pytest.mark.asyncio
async def test_waiter_gets_the_lock_after_release() -> None:
    registry = PropertyLockRegistry()
    order: list[str] = []

    async def worker(name: str) -> None:
        async with registry.hold("prop-1", timeout=1):
            order.append(name)
            await asyncio.sleep(0.01)

    await asyncio.gather(worker("first"), worker("second"))

    assert order == ["first", "second"]
