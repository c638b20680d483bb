"""TickForge — application configuration.

Loads .env variables into a typed config object.
Validates required variables on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


_REQUIRED_VARS = [
    "DERIV_API_TOKEN",
]


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    deriv_api_token: str
    deriv_app_id: str
    deriv_endpoint: str
    log_level: str
    health_port: int
    reconnect_max_attempts: int = 5
    reconnect_delay_seconds: float = 3.0
    request_timeout_seconds: float = 30.0
    cooldown_seconds: float = 15.0
    contract_pacing_seconds: float = 0.5

    @property
    def ws_url(self) -> str:
        """Return the Deriv WebSocket API URL for this app id."""
        return f"wss://{self.deriv_endpoint}/websockets/v3?app_id={self.deriv_app_id}"


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the missing variable when a
    required variable is absent.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [v for v in _REQUIRED_VARS if not os.environ.get(v)]
    if missing:
        raise ValueError(
            f"Missing required environment variable(s): {', '.join(missing)}"
        )

    return Config(
        deriv_api_token=os.environ["DERIV_API_TOKEN"],
        deriv_app_id=os.environ.get("DERIV_APP_ID", "1089"),
        deriv_endpoint=os.environ.get("DERIV_ENDPOINT", "ws.derivws.com"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        health_port=int(os.environ.get("HEALTH_PORT", "8080")),
        reconnect_max_attempts=int(os.environ.get("RECONNECT_MAX_ATTEMPTS", "5")),
        reconnect_delay_seconds=float(os.environ.get("RECONNECT_DELAY_SECONDS", "3.0")),
        request_timeout_seconds=float(os.environ.get("REQUEST_TIMEOUT_SECONDS", "30")),
        cooldown_seconds=float(os.environ.get("COOLDOWN_SECONDS", "15")),
        contract_pacing_seconds=float(os.environ.get("CONTRACT_PACING_SECONDS", "0.5")),
    )
