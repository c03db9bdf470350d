import asyncio
import gc

from agentshell.session.locks import KeyedLocks


async def test_same_key_shares_a_lock_while_in_use():
    locks = KeyedLocks()
    lock = locks.get("chat_1")
    async with lock:
        assert locks.get("chat_1") is lock
        assert locks.get("chat_1").locked()
        assert not locks.get("chat_2").locked()


async def test_waiters_are_serialized():
    locks = KeyedLocks()
    order: list[tuple[str, int]] = []

    async def _worker(n: int) -> None:
        async with locks.get("chat_1"):
            order.append(("in", n))
            await asyncio.sleep(0.01)
            order.append(("out", n))

    await asyncio.gather(*(_worker(n) for n in range(3)))

    assert order == [("in", 0), ("out", 0), ("in", 1), ("out", 1), ("in", 2), ("out", 2)]


async def test_released_locks_are_forgotten():
    locks = KeyedLocks()
    for i in range(100):
        async with locks.get(f"chat_{i}"):
            assert len(locks) >= 1

    gc.collect()
    assert len(locks) == 0
