"""Investigator configuration — external endpoints, safety posture and tuning knobs."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_prefix": "INVESTIGATOR_"}

    service_name: str = "incident-investigator"

    # Safety posture
    safe_mode: bool = True
    # Evidence kinds (METRICS, LOGS, ...) allowed to run REAL collectors in safe mode
    real_allowlist: list[str] = []

    # LLM
    llm_provider: str = "openai"
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    llm_model: str = "gpt-4o"
    llm_temperature: float = 0.1
    reasoning_timeout_seconds: float = 30.0

    # Evidence backends (empty url = collector runs synthetic)
    prometheus_url: str = ""
    loki_url: str = ""
    tempo_url: str = ""
    github_api_url: str = "https://api.github.com"
    github_token: str = ""
    github_repo: str = ""
    config_changes_url: str = ""
    backend_timeout_seconds: float = 15.0

    # Storage
    store_backend: str = "memory"  # "memory" | "redis"
    redis_url: str = "redis://redis:6379/0"
    audit_chain_id: str = "investigator"

    # Investigation tuning
    default_window_minutes: int = 30
    max_iterations: int = 5
    confidence_target: float = 0.8
    max_concurrent_investigations: int = 3

    # Server
    host: str = "0.0.0.0"
    port: int = 8100


settings = Settings()
