"""Summary: In-process message transport and interval scheduler.

Importance: Delivers pipeline action messages in dev the way a hosted pub/sub and cron would.
Alternatives: Run a real message broker and cron service locally.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

from accountpulse.models import now_ms


logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[Any]]


class PullSubscription:
    """Summary: Queue of encoded messages dispatched by action name.

    Importance: Processes one message at a time and acks every message after dispatch,
    including unknown actions and handler failures.
    Alternatives: Nack failures for redelivery.
    """

    def __init__(self, name: str, handlers: Mapping[str, Handler]) -> None:
        self.name = name
        self._handlers = dict(handlers)
        self._queue: asyncio.Queue[bytes] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self.acked = 0

    def deliver(self, data: bytes) -> None:
        self._queue.put_nowait(data)

    @property
    def backlog(self) -> int:
        return self._queue.qsize()

    async def pull(self) -> int:
        """Dispatch every queued message and return how many were acked."""

        processed = 0
        while not self._queue.empty():
            await self._dispatch(self._queue.get_nowait())
            processed += 1
        return processed

    async def _dispatch(self, data: bytes) -> None:
        try:
            message = json.loads(data.decode("utf-8"))
            action = message.get("action") if isinstance(message, dict) else None
            handler = self._handlers.get(action) if action else None
            if handler is None:
                logger.warning("%s: unknown action %s", self.name, action)
            else:
                await handler(message)
        except Exception:
            logger.exception("%s: handler failed", self.name)
        self.acked += 1

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._listen())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _listen(self) -> None:
        logger.info("listening on subscription %s", self.name)
        while True:
            data = await self._queue.get()
            await self._dispatch(data)


class InProcessTransport:
    """Summary: Topic registry that fans published messages out to pull subscriptions.

    Importance: Gives at-least-once delivery semantics to tests and local runs.
    Alternatives: Call the dispatcher directly.
    """

    def __init__(self) -> None:
        self._topics: dict[str, dict[str, PullSubscription]] = {}

    def create_topic(self, name: str) -> str:
        self._topics.setdefault(name, {})
        return name

    def create_pull_subscription(
        self, topic: str, name: str, handlers: Mapping[str, Handler]
    ) -> PullSubscription:
        subscriptions = self._topics.setdefault(topic, {})
        subscription = subscriptions.get(name)
        if subscription is None:
            subscription = PullSubscription(name, handlers)
            subscriptions[name] = subscription
        return subscription

    def subscriptions(self, topic: str) -> list[PullSubscription]:
        return list(self._topics.get(topic, {}).values())

    def publish(self, topic: str, message: Mapping[str, Any]) -> int:
        """Summary: Encode a message and queue it on every subscription of a topic.

        Importance: Messages travel as JSON bytes like on a hosted broker.
        Alternatives: Pass dictionaries by reference.
        """

        if topic not in self._topics:
            raise ValueError(f"Unknown topic: {topic}")
        data = json.dumps(dict(message)).encode("utf-8")
        subscriptions = self.subscriptions(topic)
        for subscription in subscriptions:
            subscription.deliver(data)
        return len(subscriptions)

    def start(self) -> None:
        for subscriptions in self._topics.values():
            for subscription in subscriptions.values():
                subscription.start()

    async def stop(self) -> None:
        for subscriptions in self._topics.values():
            for subscription in subscriptions.values():
                await subscription.stop()


@dataclass
class ScheduledJob:
    name: str
    topic: str
    action: str
    interval_ms: int
    task: asyncio.Task | None = field(default=None, repr=False)


class IntervalScheduler:
    """Summary: Publishes `{action, timestamp}` messages on a fixed cadence.

    Importance: Stands in for a hosted cron service in dev.
    Alternatives: Use cron expressions and an external scheduler.
    """

    def __init__(self, transport: InProcessTransport, clock: Callable[[], int] = now_ms) -> None:
        self._transport = transport
        self._clock = clock
        self._jobs: dict[str, ScheduledJob] = {}

    def add_job(self, name: str, topic: str, action: str, interval_ms: int) -> ScheduledJob:
        job = self._jobs.get(name)
        if job is None:
            job = ScheduledJob(name=name, topic=topic, action=action, interval_ms=interval_ms)
            self._jobs[name] = job
        return job

    def jobs(self) -> list[ScheduledJob]:
        return list(self._jobs.values())

    def fire(self, name: str) -> int:
        job = self._jobs[name]
        message = {"action": job.action, "timestamp": self._clock()}
        logger.info("scheduler: %s publishing %s", name, job.action)
        return self._transport.publish(job.topic, message)

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        for job in self._jobs.values():
            if job.task is None or job.task.done():
                job.task = loop.create_task(self._run(job))

    async def stop(self) -> None:
        for job in self._jobs.values():
            if job.task is None:
                continue
            job.task.cancel()
            try:
                await job.task
            except asyncio.CancelledError:
                pass
            job.task = None

    async def _run(self, job: ScheduledJob) -> None:
        while True:
            self.fire(job.name)
            await asyncio.sleep(job.interval_ms / 1000)
