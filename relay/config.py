"""
Application configuration loaded from environment variables / .env file.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = ["*"]

    # Logging
    log_level: str = "INFO"
    debug: bool = False

    # Relay
    liveness_message: str = "WebSocket server active"
    telemetry_source: str = "esp32"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
