"""Kafka topic manifest for the checkout pipeline.

Single source of truth for topic names and their partition/replication layout.
The provisioner creates these; the payment service publishes to
`PAYMENT_SUCCESSFUL` and assumes it already exists.
"""

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class TopicSpec:
    """Desired layout for one topic, keyed by name."""

    name: str
    partitions: int = 3
    replication_factor: int = 3

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("topic name must be non-empty")
        if self.partitions < 1:
            raise ValueError(f"partitions must be positive for {self.name}: {self.partitions}")
        if self.replication_factor < 1:
            raise ValueError(
                f"replication_factor must be positive for {self.name}: {self.replication_factor}"
            )


PAYMENT_SUCCESSFUL = TopicSpec(name="payment-successful")
ORDER_SUCCESSFUL = TopicSpec(name="order-successful")
EMAIL_SUCCESSFUL = TopicSpec(name="email-successful")

REQUIRED_TOPICS: frozenset[TopicSpec] = frozenset({PAYMENT_SUCCESSFUL, ORDER_SUCCESSFUL, EMAIL_SUCCESSFUL})


def required_topics(
    partitions: int | None = None,
    replication_factor: int | None = None,
) -> frozenset[TopicSpec]:
    """Return the manifest, optionally overriding the layout of every topic.

    Overrides exist for single-broker development clusters where a replication
    factor of 3 can never be satisfied.
    """

    overrides = {}
    if partitions is not None:
        overrides["partitions"] = partitions
    if replication_factor is not None:
        overrides["replication_factor"] = replication_factor
    if not overrides:
        return REQUIRED_TOPICS
    return frozenset(replace(spec, **overrides) for spec in REQUIRED_TOPICS)
