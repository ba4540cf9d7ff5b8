"""Central environment-driven settings shared by both processes.

The payment service and the topic provisioner each load this once at startup.
Behavior is controlled by environment variables (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "payment-service"
    log_level: str = "INFO"
    kafka_bootstrap_servers: str = "localhost:9094,localhost:9095,localhost:9096"
    kafka_client_id: str = "payment-service"
    kafka_acks: str = "all"
    provisioner_bootstrap_servers: str = "localhost:9094"
    admin_request_timeout_ms: int = 30_000
    leader_wait_timeout_seconds: float = 30.0
    topic_partitions: int | None = None
    topic_replication_factor: int | None = None
    payment_topic: str = "payment-successful"
    cors_origin: str = "http://localhost:3000"
    host: str = "0.0.0.0"
    port: int = 8000
    # Simulated downstream processing latency before the 200 is sent.
    response_delay_seconds: float = 3.0
    publish_timeout_seconds: float = 10.0
    # Placeholder identity until an upstream auth layer sets X-User-Id.
    default_user_id: str = "123"
    otel_exporter_otlp_endpoint: str | None = None
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
