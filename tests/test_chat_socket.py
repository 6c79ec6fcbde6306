import asyncio
import logging

import pytest

from wellness_messaging.routers.chat import stop_subscription


class FailingSubscription:

    def __init__(self) -> None:
        self.cancelled = False

    async def run(self) -> None:
        raise RuntimeError("socket already closed")

    async def cancel(self) -> None:
        self.cancelled = True


class IdleSubscription(FailingSubscription):

    async def run(self) -> None:
        await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_failed_forwarding_task_is_collected_and_logged(caplog):
    subscription = FailingSubscription()
    task = asyncio.create_task(subscription.run())
    await asyncio.sleep(0)

    with caplog.at_level(logging.ERROR, logger="wellness_messaging"):
        await stop_subscription(subscription, task)

    assert subscription.cancelled is True
    assert task.done()
    assert "socket already closed" in caplog.text


@pytest.mark.asyncio
async def test_running_forwarding_task_is_cancelled(caplog):
    subscription = IdleSubscription()
    task = asyncio.create_task(subscription.run())
    await asyncio.sleep(0)

    with caplog.at_level(logging.ERROR, logger="wellness_messaging"):
        await stop_subscription(subscription, task)

    assert task.cancelled()
    assert caplog.text == ""
