# kafka_canary/core/config.py
import json
from datetime import timedelta
from typing import Annotated, Dict, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from kafka_canary.domain.models.canary import CanaryConfig


class Settings(BaseSettings):
    """
    Central application settings loaded from environment variables (and .env).

    Notes
    -----
    - `canary_topic_configs` supports either JSON (recommended) or a compact string form:
        CANARY_TOPIC_CONFIGS='{"retention.ms":"600000","min.insync.replicas":"2"}'
      or:
        CANARY_TOPIC_CONFIGS='retention.ms=600000,min.insync.replicas=2'
    - `cors_allow_origins` accepts JSON array or comma-separated string.
    - The status time window is approximated by `window // interval` samples.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ---------- Kafka client/admin ----------
    kafka_bootstrap: str = Field("localhost:9092")
    kafka_api_version: str | None = None
    client_id: str = "kafka-canary"

    # Client timeouts (ms)
    request_timeout_ms: int = 20_000
    metadata_max_age_ms: int = 30_000
    api_version_auto_timeout_ms: int = 10_000

    # ---------- Security (set when using SASL/SSL) ----------
    security_protocol: str = "PLAINTEXT"   # e.g. "SASL_SSL", "SSL"
    sasl_mechanism: str | None = None
    sasl_plain_username: str | None = None
    sasl_plain_password: str | None = None
    ssl_cafile: str | None = None

    # ---------- Canary topic ----------
    canary_topic: str = Field(default="__kafka_canary", pattern=r"^[\w\-.]+$")
    canary_partitions: int = Field(default=1, ge=1)
    canary_replication_factor: int = Field(default=3, ge=1)
    canary_topic_configs: Annotated[Dict[str, str], NoDecode] = Field(default_factory=dict)
    canary_consumer_group: str = "kafka-canary-group"

    # ---------- Scheduling ----------
    status_check_interval_sec: float = Field(
        default=30.0, gt=0,
        description="Seconds between two samples of the produced/consumed totals."
    )
    status_time_window_sec: float = Field(
        default=300.0, gt=0,
        description="Trailing window covered by the delivery percentage."
    )
    reconcile_interval_sec: float = Field(default=30.0, gt=0)
    reconcile_timeout_sec: float = Field(
        default=20.0, gt=0,
        description="Deadline for a single reconcile attempt."
    )
    producer_interval_sec: float = Field(default=1.0, gt=0)
    consumer_poll_timeout_ms: int = Field(default=1000, ge=0)

    # ---------- Observability ----------
    metrics_enabled: bool = True
    log_level: str = "INFO"

    # ---------- CORS ----------
    cors_allow_origins: Annotated[List[str] | None, NoDecode] = None

    @field_validator("cors_allow_origins", mode="before")
    def _parse_cors_origins(cls, v):
        """Accept JSON array or comma-separated string."""
        if v is None:
            return None
        if isinstance(v, str):
            try:
                parsed = json.loads(v)  # JSON array
                if isinstance(parsed, list):
                    return [str(s).strip() for s in parsed if str(s).strip()]
            except ValueError:
                pass
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("canary_topic_configs", mode="before")
    def _parse_topic_configs(cls, v):
        """
        Accept JSON mapping or a compact string format:
          'retention.ms=600000,cleanup.policy=delete'
        """
        if v is None:
            return {}
        if isinstance(v, dict):
            return {str(k).strip(): str(val).strip() for k, val in v.items()}
        if isinstance(v, str):
            # Try JSON mapping first
            try:
                obj = json.loads(v)
                if isinstance(obj, dict):
                    return {str(k).strip(): str(val).strip() for k, val in obj.items()}
            except ValueError:
                pass
            # Fallback compact form
            result: Dict[str, str] = {}
            for part in v.split(","):
                part = part.strip()
                if not part:
                    continue
                if "=" not in part:
                    raise ValueError(f"invalid topic config entry '{part}', expected key=value")
                key, value = part.split("=", 1)
                result[key.strip()] = value.strip()
            return result
        return v

    def canary_config(self) -> CanaryConfig:
        """Freeze the canary-related settings for the process lifetime."""
        return CanaryConfig(
            topic=self.canary_topic,
            partitions=self.canary_partitions,
            replication_factor=self.canary_replication_factor,
            topic_config=dict(self.canary_topic_configs),
            consumer_group=self.canary_consumer_group,
            client_id=self.client_id,
            status_check_interval=timedelta(seconds=self.status_check_interval_sec),
            status_time_window=timedelta(seconds=self.status_time_window_sec),
        )


settings = Settings()
