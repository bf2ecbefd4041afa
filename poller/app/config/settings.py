from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # servicebus | storagequeue | eventhub | rabbitmq | inmemory
    source_backend: str = Field("servicebus", validation_alias="SOURCE_BACKEND")

    servicebus_fqdn: str = Field("", validation_alias="SERVICEBUS_FQDN")
    servicebus_queue_name: str = Field("training-queue", validation_alias="SERVICEBUS_QUEUE_NAME")

    storage_queue_account_url: str = Field("", validation_alias="STORAGE_QUEUE_ACCOUNT_URL")
    storage_queue_name: str = Field("training-queue", validation_alias="STORAGE_QUEUE_NAME")

    eventhub_fqdn: str = Field("", validation_alias="EVENTHUB_FQDN")
    eventhub_name: str = Field("training-events", validation_alias="EVENTHUB_NAME")
    eventhub_consumer_group: str = Field("training-cg", validation_alias="EVENTHUB_CONSUMER_GROUP")
    checkpoint_account_url: str = Field("", validation_alias="CHECKPOINT_ACCOUNT_URL")
    checkpoint_container_name: str = Field("eventhub-checkpoints", validation_alias="CHECKPOINT_CONTAINER_NAME")

    broker_host: str = Field("localhost", validation_alias="BROKER_HOST")
    broker_port: int = Field(5672, validation_alias="BROKER_PORT")
    broker_user: str = Field("guest", validation_alias="BROKER_USER")
    broker_password: str = Field("guest", validation_alias="BROKER_PASSWORD")
    broker_queue_name: str = Field("training-queue", validation_alias="BROKER_QUEUE_NAME")

    # default | cli | managed_identity | client_secret
    auth_strategy: str = Field("default", validation_alias="AUTH_STRATEGY")
    azure_tenant_id: str = Field("", validation_alias="AZURE_TENANT_ID")
    azure_client_id: str = Field("", validation_alias="AZURE_CLIENT_ID")
    azure_client_secret: SecretStr = Field(SecretStr(""), validation_alias="AZURE_CLIENT_SECRET")

    max_batch_size: int = Field(10, validation_alias="MAX_BATCH_SIZE")
    poll_deadline_seconds: float = Field(30.0, validation_alias="POLL_DEADLINE_SECONDS")
    idle_wait_seconds: float = Field(2.0, validation_alias="IDLE_WAIT_SECONDS")
    ack_deadline_seconds: float = Field(30.0, validation_alias="ACK_DEADLINE_SECONDS")
    # Seconds a received storage-queue / in-memory message stays invisible before redelivery.
    visibility_timeout_seconds: int = Field(30, validation_alias="VISIBILITY_TIMEOUT_SECONDS")
    dedupe_capacity: int = Field(10_000, validation_alias="DEDUPE_CAPACITY")

    send_interval_seconds: float = Field(2.0, validation_alias="SEND_INTERVAL_SECONDS")
    # 0 = send until cancelled
    send_count: int = Field(0, validation_alias="SEND_COUNT")
    send_deadline_seconds: float = Field(30.0, validation_alias="SEND_DEADLINE_SECONDS")

    initial_backoff_seconds: float = Field(1.0, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(30.0, validation_alias="MAX_BACKOFF_SECONDS")
    max_connection_attempts: int = Field(5, validation_alias="MAX_CONNECTION_ATTEMPTS")
    backoff_multiplier: float = Field(2.0, validation_alias="BACKOFF_MULTIPLIER")

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
