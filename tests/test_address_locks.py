import asyncio

import pytest

from edubot.services.address_locks import AddressLocks


class TestAddressLocks:
    @pytest.mark.asyncio
    async def test_same_address_runs_one_at_a_time(self):
        locks = AddressLocks()
        order = []
        first_inside = asyncio.Event()
        release_first = asyncio.Event()

        async def first():
            async with locks.hold("111"):
                order.append("first-start")
                first_inside.set()
                await release_first.wait()
                order.append("first-end")

        async def second():
            await first_inside.wait()
            async with locks.hold("111"):
                order.append("second")

        task_1 = asyncio.create_task(first())
        task_2 = asyncio.create_task(second())
        await first_inside.wait()
        await asyncio.sleep(0)
        assert locks.is_held("111")
        assert order == ["first-start"]

        release_first.set()
        await asyncio.gather(task_1, task_2)

        assert order == ["first-start", "first-end", "second"]

    @pytest.mark.asyncio
    async def test_different_addresses_do_not_wait(self):
        locks = AddressLocks()
        release = asyncio.Event()

        async def hold_a():
            async with locks.hold("111"):
                await release.wait()

        task = asyncio.create_task(hold_a())
        await asyncio.sleep(0)

        async with locks.hold("222"):
            assert locks.is_held("111")
            assert locks.is_held("222")

        release.set()
        await task

    @pytest.mark.asyncio
    async def test_locks_are_dropped_when_unused(self):
        locks = AddressLocks()
        async with locks.hold("111"):
            assert len(locks) == 1
        assert len(locks) == 0
        assert not locks.is_held("111")

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self):
        locks = AddressLocks()
        with pytest.raises(RuntimeError):
            async with locks.hold("111"):
                raise RuntimeError("handler blew up")
        assert len(locks) == 0
