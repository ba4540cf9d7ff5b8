"""Idempotent topic provisioning against the Kafka cluster.

A run lists the live topics, creates only the missing ones in one batched
request, and waits until every new partition has an elected leader. Safe to
re-run: a second run with the same manifest creates nothing.
"""

import asyncio
from collections.abc import Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from aiokafka.admin import AIOKafkaAdminClient, NewTopic
from aiokafka.errors import KafkaError, TopicAlreadyExistsError, for_code

from cartpay.common.config import settings
from cartpay.common.errors import AdminOperationError, ClusterConnectionError
from cartpay.common.logging import logger
from cartpay.common.topics import TopicSpec

NO_LEADER = -1


@dataclass(frozen=True)
class ProvisionResult:
    """Outcome of one provisioning run."""

    created: frozenset[str] = field(default_factory=frozenset)
    existing: frozenset[str] = field(default_factory=frozenset)

    @property
    def noop(self) -> bool:
        return not self.created


class TopicProvisioner:
    """Creates missing manifest topics through a short-lived admin client."""

    def __init__(
        self,
        bootstrap_servers: str | None = None,
        admin_factory=None,
        request_timeout_ms: int | None = None,
        leader_wait_timeout_seconds: float | None = None,
        leader_poll_interval_seconds: float = 0.5,
    ) -> None:
        self.bootstrap_servers = bootstrap_servers or settings.provisioner_bootstrap_servers
        self.request_timeout_ms = request_timeout_ms or settings.admin_request_timeout_ms
        self.leader_wait_timeout_seconds = (
            settings.leader_wait_timeout_seconds
            if leader_wait_timeout_seconds is None
            else leader_wait_timeout_seconds
        )
        self.leader_poll_interval_seconds = leader_poll_interval_seconds
        self._admin_factory = admin_factory or self._default_admin

    def _default_admin(self) -> AIOKafkaAdminClient:
        return AIOKafkaAdminClient(
            bootstrap_servers=self.bootstrap_servers,
            client_id="topic-provisioner",
            request_timeout_ms=self.request_timeout_ms,
        )

    @asynccontextmanager
    async def admin_session(self):
        """Yield a started admin client; it is closed on every exit path."""

        admin = self._admin_factory()
        try:
            try:
                await admin.start()
            except (KafkaError, OSError) as exc:
                raise ClusterConnectionError(
                    f"Unable to connect admin client to {self.bootstrap_servers}",
                    details=str(exc),
                ) from exc
            logger.info("admin_connected bootstrap=%s", self.bootstrap_servers)
            yield admin
        finally:
            await admin.close()
            logger.info("admin_disconnected bootstrap=%s", self.bootstrap_servers)

    async def provision(self, required: Iterable[TopicSpec]) -> ProvisionResult:
        """Create every topic in `required` that the cluster does not have yet."""

        specs = {spec.name: spec for spec in required}
        async with self.admin_session() as admin:
            existing = await self._list_topics(admin)
            logger.info("existing_topics=%s", sorted(existing))
            missing = [spec for name, spec in sorted(specs.items()) if name not in existing]
            present = frozenset(specs) - {spec.name for spec in missing}
            if not missing:
                logger.info("all_topics_exist count=%s", len(specs))
                return ProvisionResult(existing=present)

            await self._check_replication(admin, missing)
            created, raced = await self._create_topics(admin, missing)
            await self._wait_for_leaders(admin, created)

        logger.info("topics_created=%s", sorted(created))
        return ProvisionResult(created=frozenset(created), existing=present | frozenset(raced))

    async def _list_topics(self, admin) -> set[str]:
        try:
            return set(await admin.list_topics())
        except (KafkaError, OSError) as exc:
            raise AdminOperationError("Listing topics failed", details=str(exc)) from exc

    async def _check_replication(self, admin, missing: list[TopicSpec]) -> None:
        try:
            cluster = await admin.describe_cluster()
        except (KafkaError, OSError) as exc:
            raise AdminOperationError("Describing cluster failed", details=str(exc)) from exc
        broker_count = len(cluster.get("brokers") or [])
        errors = [
            {
                "topic": spec.name,
                "code": None,
                "error": "InvalidReplicationFactorError",
                "message": f"replication factor {spec.replication_factor} exceeds {broker_count} live broker(s)",
            }
            for spec in missing
            if spec.replication_factor > broker_count
        ]
        if errors:
            raise AdminOperationError("Replication factor exceeds available brokers", errors=errors)

    async def _create_topics(self, admin, missing: list[TopicSpec]) -> tuple[list[str], list[str]]:
        """Issue one batched create call; returns (created, already_existing)."""

        new_topics = [
            NewTopic(
                name=spec.name,
                num_partitions=spec.partitions,
                replication_factor=spec.replication_factor,
            )
            for spec in missing
        ]
        try:
            response = await admin.create_topics(new_topics, timeout_ms=self.request_timeout_ms)
        except (KafkaError, OSError) as exc:
            raise AdminOperationError("Creating topics failed", details=str(exc)) from exc

        failed: dict[str, dict[str, Any]] = {}
        raced: list[str] = []
        for topic_error in getattr(response, "topic_errors", None) or []:
            topic, code = topic_error[0], topic_error[1]
            message = topic_error[2] if len(topic_error) > 2 else None
            if not code:
                continue
            error_cls = for_code(code)
            if error_cls is TopicAlreadyExistsError:
                logger.info("topic_created_concurrently topic=%s", topic)
                raced.append(topic)
                continue
            failed[topic] = {"topic": topic, "code": code, "error": error_cls.__name__, "message": message}

        if failed:
            raise AdminOperationError(
                f"Creating {len(failed)} topic(s) failed",
                errors=list(failed.values()),
                details="; ".join(f"{e['topic']}: {e['error']}" for e in failed.values()),
            )
        created = [spec.name for spec in missing if spec.name not in raced]
        return created, raced

    async def _wait_for_leaders(self, admin, topics: list[str]) -> None:
        """Poll topic metadata until every partition of `topics` has a leader."""

        if not topics:
            return
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.leader_wait_timeout_seconds
        pending = set(topics)
        while True:
            try:
                described = await admin.describe_topics(sorted(pending))
            except (KafkaError, OSError) as exc:
                raise AdminOperationError("Describing topics failed", details=str(exc)) from exc
            for topic in described:
                partitions = topic.get("partitions") or []
                if topic.get("error_code"):
                    continue
                if partitions and all(p.get("leader", NO_LEADER) != NO_LEADER for p in partitions):
                    pending.discard(topic.get("topic"))
            if not pending:
                return
            if loop.time() >= deadline:
                raise AdminOperationError(
                    "Timed out waiting for partition leaders",
                    errors=[
                        {"topic": t, "code": None, "error": "LeaderNotAvailableError", "message": None}
                        for t in sorted(pending)
                    ],
                )
            logger.info("waiting_for_leaders topics=%s", sorted(pending))
            await asyncio.sleep(self.leader_poll_interval_seconds)
