"""Summary: Dispatcher for the scheduled load and snapshot pipelines.

Importance: Refreshes every cached entity and aggregates history at most once in flight.
Alternatives: Run refresh jobs from an external cron without a guard.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Mapping

from accountpulse.constants import (
    DATA_PIPELINE_SECTION,
    HISTORY,
    INVOKE_INFO,
    IN_PROGRESS,
    LAST_UPDATED_TIMESTAMP,
    LEGACY_LOAD_ACTION,
    LEGACY_SNAPSHOT_ACTION,
    LOAD_ACTION,
    LOAD_SECTION,
    SNAPSHOT_ACTION,
    SNAPSHOT_SECTION,
    SYSTEM_INFO,
)
from accountpulse.dal import DataAccessLayer
from accountpulse.errors import PulseError, StoreError
from accountpulse.models import InvokeInfo, LoadReport
from accountpulse.providers.registry import ProviderRegistry
from accountpulse.snapshot import summarize
from accountpulse.storage.document_store import DocumentStore
from accountpulse.transport import InProcessTransport, IntervalScheduler


logger = logging.getLogger(__name__)

SECTION_FOR_ACTION = {
    LOAD_ACTION: LOAD_SECTION,
    LEGACY_LOAD_ACTION: LOAD_SECTION,
    SNAPSHOT_ACTION: SNAPSHOT_SECTION,
    LEGACY_SNAPSHOT_ACTION: SNAPSHOT_SECTION,
}


class DataPipeline:
    """Summary: Runs the load and snapshot pipelines behind an in-progress guard.

    Importance: Tolerates duplicate and stale deliveries from an at-least-once transport.
    Alternatives: Rely on the scheduler never overlapping runs.
    """

    def __init__(
        self,
        dal: DataAccessLayer,
        registry: ProviderRegistry,
        load_interval_ms: int = 3_600_000,
        snapshot_interval_ms: int = 86_400_000,
        buffer_ms: int = 60_000,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._dal = dal
        self._store = dal.store
        self._registry = registry
        self._intervals = {LOAD_SECTION: load_interval_ms, SNAPSHOT_SECTION: snapshot_interval_ms}
        self._buffer_ms = buffer_ms
        self._clock = clock or dal.now

    @property
    def store(self) -> DocumentStore:
        return self._store

    def interval(self, section: str) -> int:
        return self._intervals[section]

    async def handle_message(self, message: Mapping[str, Any]) -> bool:
        """Summary: Dispatch one `{action, timestamp?}` message.

        Importance: Drops unknown actions and messages older than the section interval.
        Alternatives: Trust every delivery.
        """

        action = message.get("action")
        section = SECTION_FOR_ACTION.get(action)
        if section is None:
            logger.warning("handle_message: unknown action %s", action)
            return False
        timestamp = message.get("timestamp")
        if timestamp is not None:
            try:
                age = self._clock() - int(timestamp)
            except (TypeError, ValueError):
                logger.warning("handle_message: bad timestamp %r", timestamp)
                return False
            if age > self._intervals[section]:
                logger.info("handle_message: dropping stale %s message (%s ms old)", action, age)
                return False
        return await self.run_section(section)

    async def run_section(self, section: str) -> bool:
        """Summary: Run a section body if it is idle and due, and report whether it ran.

        Importance: The idle-to-running transition is a compare-and-set, so racing
        deliveries start the body once.
        Alternatives: Use a process-local lock.
        """

        interval = self._intervals[section]
        try:
            state = await self._store.get_user_data(SYSTEM_INFO, section) or {}
            if state.get(IN_PROGRESS):
                logger.info("run_section: %s already in progress", section)
                return False
            last = state.get(LAST_UPDATED_TIMESTAMP)
            if last is not None and self._clock() - last <= interval - self._buffer_ms:
                logger.info("run_section: %s is not due yet", section)
                return False
            acquired = await self._store.compare_and_set_user_data(
                SYSTEM_INFO,
                section,
                {IN_PROGRESS: state.get(IN_PROGRESS), LAST_UPDATED_TIMESTAMP: last},
                {IN_PROGRESS: True},
            )
        except StoreError as exc:
            logger.warning("run_section: %s state unavailable: %s", section, exc)
            return False
        if not acquired:
            logger.info("run_section: lost the race for %s", section)
            return False

        logger.info("run_section: invoking %s pipeline", section)
        try:
            if section == LOAD_SECTION:
                report = await self.run_load()
                logger.info("run_section: load finished %s", report)
            else:
                await self.refresh_history()
        except PulseError as exc:
            # left in progress; reset_section clears it
            logger.error("run_section: %s aborted before fan-out: %s", section, exc)
            return False

        try:
            await self._store.set_user_data(
                SYSTEM_INFO, section, {LAST_UPDATED_TIMESTAMP: self._clock(), IN_PROGRESS: False}
            )
        except StoreError as exc:
            logger.error("run_section: %s finished but its state was not saved: %s", section, exc)
        return True

    async def run_load(self) -> LoadReport:
        """Summary: Force-refresh every cached entity of every user.

        Importance: Keeps caches warm; failures are isolated per user and entity.
        Alternatives: Refresh lazily on the next read only.
        """

        users = await self._store.get_all_users()
        report = LoadReport(users=len(users))
        await asyncio.gather(*(self._load_user(user_id, report) for user_id in users))
        return report

    async def _load_user(self, user_id: str, report: LoadReport) -> None:
        try:
            collections = await self._store.get_user_collections(user_id)
        except StoreError as exc:
            logger.warning("run_load: user %s collections unavailable: %s", user_id, exc)
            report.failed += 1
            return
        logger.info("run_load: user %s collections %s", user_id, collections)
        await asyncio.gather(
            *(self._load_entity(user_id, collection, report) for collection in collections)
        )

    async def _load_entity(self, user_id: str, collection: str, report: LoadReport) -> None:
        try:
            document = await self._store.get_document(user_id, collection, INVOKE_INFO)
        except StoreError as exc:
            logger.warning("run_load: %s:%s invoke info unavailable: %s", user_id, collection, exc)
            report.failed += 1
            return
        info = InvokeInfo.from_document(document)
        provider = self._registry.get(info.provider, info.name)
        if provider is None:
            logger.info(
                "run_load: skipping %s:%s, no provider %s:%s",
                user_id,
                collection,
                info.provider,
                info.name,
            )
            report.skipped += 1
            return
        data = await self._dal.get_data(user_id, provider, collection, info.params, force_refresh=True)
        if data is None:
            report.failed += 1
        else:
            report.refreshed += 1

    async def refresh_history(self, user_id: str | None = None) -> dict[str, dict[str, Any]]:
        """Summary: Aggregate metadata into a history snapshot for one or all users.

        Importance: Produces the time series behind sentiment trend views.
        Alternatives: Aggregate on every read.
        """

        users = [user_id] if user_id else await self._store.get_all_users()
        results = await asyncio.gather(*(self._snapshot_user(user) for user in users))
        return {user: summary for user, summary in zip(users, results) if summary is not None}

    async def _snapshot_user(self, user_id: str) -> dict[str, Any] | None:
        metadata = await self._dal.get_metadata(user_id)
        if not metadata:
            return None
        now = self._clock()
        summary = summarize(metadata, now)
        try:
            await self._store.store_document(user_id, HISTORY, str(now), summary)
        except StoreError as exc:
            logger.warning("refresh_history: %s not stored: %s", user_id, exc)
            return None
        return summary

    async def get_history(self, user_id: str) -> list[dict[str, Any]] | None:
        try:
            documents = await self._store.query(user_id, HISTORY)
        except StoreError as exc:
            logger.warning("get_history %s failed: %s", user_id, exc)
            return None
        return sorted(documents, key=lambda document: document.get("timestamp") or 0)

    async def reset_section(self, section: str) -> dict[str, Any]:
        """Summary: Clear a stuck in-progress flag.

        Importance: Recovers a section whose run aborted before fan-out.
        Alternatives: Expire the flag automatically after a timeout.
        """

        if section not in self._intervals and section != DATA_PIPELINE_SECTION:
            raise ValueError(f"Unknown section: {section}")
        logger.info("reset_section: clearing %s", section)
        return await self._store.set_user_data(SYSTEM_INFO, section, {IN_PROGRESS: False})

    async def section_state(self, section: str) -> dict[str, Any]:
        return await self._store.get_user_data(SYSTEM_INFO, section) or {}


def pipeline_names(env: str) -> dict[str, str]:
    """Topic, subscription, and job names for an environment."""

    return {
        "topicName": f"{LEGACY_LOAD_ACTION}-{env}",
        "subName": f"{LEGACY_LOAD_ACTION}-sub-{env}",
        "jobName": f"{LEGACY_LOAD_ACTION}-job-{env}",
    }


async def create_data_pipeline(
    pipeline: DataPipeline,
    transport: InProcessTransport,
    scheduler: IntervalScheduler | None,
    env: str,
) -> dict[str, Any]:
    """Summary: Wire the message transport and scheduler to the dispatcher.

    Importance: Dev runs an in-process pull subscription and scheduler; prod relies on
    the push endpoint and an external scheduler, so only the names are recorded.
    Alternatives: Configure queues and jobs by hand.
    """

    names = pipeline_names(env)
    store = pipeline.store
    current = await store.get_user_data(SYSTEM_INFO, DATA_PIPELINE_SECTION) or {}
    topic = transport.create_topic(names["topicName"])
    if env != "prod":
        handlers = {action: pipeline.handle_message for action in SECTION_FOR_ACTION}
        transport.create_pull_subscription(topic, names["subName"], handlers)
        if scheduler is not None:
            scheduler.add_job(names["jobName"], topic, LOAD_ACTION, pipeline.interval(LOAD_SECTION))
            scheduler.add_job(
                f"{names['jobName']}-{SNAPSHOT_ACTION}",
                topic,
                SNAPSHOT_ACTION,
                pipeline.interval(SNAPSHOT_SECTION),
            )
    if all(current.get(key) == value for key, value in names.items()):
        return current
    logger.info("create_data_pipeline: recording %s", names)
    return await store.set_user_data(SYSTEM_INFO, DATA_PIPELINE_SECTION, names)
