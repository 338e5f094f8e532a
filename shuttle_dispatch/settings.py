"""
File: shuttle_dispatch/settings.py
Purpose: Environment-backed configuration for the shuttle dispatch service.
Key responsibilities:
- Parse entity-store, event transport and RabbitMQ settings.
- Define simulation cadences and tuning constants.
"""

from dataclasses import dataclass
import os


def _optional_int_env(name: str) -> int | None:
    """Parse an optional integer env var."""
    raw = os.getenv(name, "")
    if raw == "":
        return None
    return int(raw)


@dataclass(frozen=True)
class Settings:
    """Service configuration parsed from environment."""
    store_url: str = os.getenv("STORE_URL", "http://entity-store:8000")
    store_token: str = os.getenv("STORE_TOKEN", "")
    store_timeout_s: float = float(os.getenv("STORE_TIMEOUT_S", "10"))
    event_transport: str = os.getenv("EVENT_TRANSPORT", "amqp")
    webhook_url: str = os.getenv("WEBHOOK_URL", "http://entity-store:8000/functions/triggerWebhooks")
    webhook_internal_key: str = os.getenv("WEBHOOK_INTERNAL_KEY", "")
    rabbit_host: str = os.getenv("RABBITMQ_HOST", "rabbitmq")
    rabbit_port: int = int(os.getenv("RABBITMQ_PORT", "5672"))
    rabbit_user: str = os.getenv("RABBITMQ_USER", "shuttle")
    rabbit_pass: str = os.getenv("RABBITMQ_PASS", "shuttlepass")
    exchange_name: str = "shuttle.events"
    hub_location: str = os.getenv("HUB_LOCATION", "hotel-lobby")
    sim_duration_s: int = int(os.getenv("SIM_DURATION_S", "3600"))
    countdown_interval_s: float = float(os.getenv("COUNTDOWN_INTERVAL_S", "1"))
    ride_creation_min_s: float = float(os.getenv("RIDE_CREATION_MIN_S", "15"))
    ride_creation_max_s: float = float(os.getenv("RIDE_CREATION_MAX_S", "30"))
    first_ride_delay_s: float = float(os.getenv("FIRST_RIDE_DELAY_S", "2"))
    assignment_interval_s: float = float(os.getenv("ASSIGNMENT_INTERVAL_S", "8"))
    motion_interval_s: float = float(os.getenv("MOTION_INTERVAL_S", "2"))
    sync_interval_s: float = float(os.getenv("SYNC_INTERVAL_S", "10"))
    idle_sync_interval_s: float = float(os.getenv("IDLE_SYNC_INTERVAL_S", "5"))
    arrival_grace_s: float = float(os.getenv("ARRIVAL_GRACE_S", "2"))
    sync_ride_limit: int = int(os.getenv("SYNC_RIDE_LIMIT", "200"))
    sync_max_retries: int = int(os.getenv("SYNC_MAX_RETRIES", "3"))
    sync_backoff_base_s: float = float(os.getenv("SYNC_BACKOFF_BASE_S", "1"))
    access_window_s: int = int(os.getenv("ACCESS_WINDOW_S", "300"))
    motion_speed_deg_s: float = float(os.getenv("MOTION_SPEED_DEG_S", "0.00015"))
    km_per_degree: float = float(os.getenv("KM_PER_DEGREE", "111"))
    sim_seed: int | None = _optional_int_env("SIM_SEED")


settings = Settings()


def rabbit_url() -> str:
    return f"amqp://{settings.rabbit_user}:{settings.rabbit_pass}@{settings.rabbit_host}:{settings.rabbit_port}/"
