"""Create the checkout pipeline's Kafka topics if they do not exist yet.

Run once before starting the payment service. Exits 0 when every manifest topic
exists afterwards (including the no-op case) and 1 when the run fails.
"""

import argparse
import asyncio

from cartpay.common.config import settings
from cartpay.common.errors import CartPayError
from cartpay.common.logging import configure_logging, logger
from cartpay.common.startup import log_startup_config
from cartpay.common.topics import required_topics
from cartpay.services.provisioner.service import ProvisionResult, TopicProvisioner


async def run(
    bootstrap_servers: str,
    partitions: int | None,
    replication_factor: int | None,
    leader_wait_seconds: float | None,
) -> ProvisionResult:
    """Provision the manifest once against `bootstrap_servers`."""

    provisioner = TopicProvisioner(
        bootstrap_servers=bootstrap_servers,
        leader_wait_timeout_seconds=leader_wait_seconds,
    )
    return await provisioner.provision(required_topics(partitions, replication_factor))


def main() -> None:
    """Parse CLI args and run one provisioning pass."""

    parser = argparse.ArgumentParser(description="Create missing checkout pipeline topics.")
    parser.add_argument("--bootstrap-servers", default=settings.provisioner_bootstrap_servers)
    parser.add_argument("--partitions", type=int, default=settings.topic_partitions)
    parser.add_argument("--replication-factor", type=int, default=settings.topic_replication_factor)
    parser.add_argument("--leader-wait-seconds", type=float, default=None)
    args = parser.parse_args()

    configure_logging(service_name="topic-provisioner")
    log_startup_config("topic-provisioner", ["admin_request_timeout_ms", "leader_wait_timeout_seconds"])
    try:
        result = asyncio.run(
            run(args.bootstrap_servers, args.partitions, args.replication_factor, args.leader_wait_seconds)
        )
    except CartPayError as exc:
        logger.error(
            "provisioning_failed error=%s details=%s errors=%s",
            exc.message,
            exc.details,
            getattr(exc, "errors", []),
        )
        raise SystemExit(1) from exc

    if result.noop:
        print("All topics already exist")
    else:
        print(f"Created topics: {sorted(result.created)}")


if __name__ == "__main__":
    main()
