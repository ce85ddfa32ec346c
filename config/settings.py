"""Centralized configuration using pydantic-settings. All values are env-configurable."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TRIZZA_")

    # Backend
    backend: str = "redis"  # "redis" | "memory"
    redis_url: str = "redis://redis:6379/0"
    redis_pool_size: int = 20
    redis_retention_ms: int = 7 * 86_400_000  # 7 days
    redis_max_retries: int = 3
    redis_retry_backoff_sec: float = 0.1
    redis_failure_threshold: int = 5
    redis_recovery_sec: float = 30.0

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    ws_throttle_ms: int = 100

    # Simulation
    store_capacity: int = 100
    tick_interval_sec: int = 30
    allowed_tick_intervals: tuple[int, ...] = (5, 30, 60, 300)
    realtime_enabled: bool = False
    rare_event_probability: float = 0.01
    order_probability: float = 0.3

    # Detection
    spike_ratio: float = 0.5
    spike_window_sec: int = 3600
    popularity_poll_sec: int = 30
    dedup_cooldown_sec: float = 300.0
    visible_notifications: int = 5

    # Remote anomaly classifier
    classifier_enabled: bool = False
    classifier_url: str = "https://crack-a-code-vxe7.onrender.com/predict"
    classifier_timeout_sec: float = 10.0

    # Monitoring
    enable_prometheus: bool = True
    log_level: str = "INFO"
    log_format: str = "json"  # "json" | "console"
