# chatrelay/core/config.py
import os
from typing import List, Literal
from dotenv import load_dotenv


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Setup environment variables.
        - BROADCAST_BACKEND how accepted messages reach the sockets: "local" or "redis"
        - ROOMS_FILE json file holding room metadata (empty keeps rooms in memory)
        - SEND_TIMEOUT_SECONDS per-socket write timeout used by the dispatcher
        - SESSION_SECRET shared with the auth service that issues session cookies
        - WS_REQUIRE_SESSION refuse websocket upgrades without a valid session cookie

    Any attribute can be overridden with keyword arguments, which is how tests
    build isolated settings without touching the environment.
    """

    # Load environment variables from the .env file
    load_dotenv()

    BROADCAST_BACKEND: Literal["local", "redis"] = os.getenv("BROADCAST_BACKEND", "local")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")
    REDIS_SSL: bool = _env_bool("REDIS_SSL")

    ROOMS_FILE: str = os.getenv("ROOMS_FILE", "")

    HISTORY_DEFAULT_LIMIT: int = int(os.getenv("HISTORY_DEFAULT_LIMIT", "50"))
    HISTORY_MAX_LIMIT: int = int(os.getenv("HISTORY_MAX_LIMIT", "200"))

    SEND_TIMEOUT_SECONDS: float = float(os.getenv("SEND_TIMEOUT_SECONDS", "5.0"))

    SESSION_SECRET: str = os.getenv("SESSION_SECRET", "change-me")
    SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "session_token")
    SESSION_ALGORITHM: str = os.getenv("SESSION_ALGORITHM", "HS256")
    WS_REQUIRE_SESSION: bool = _env_bool("WS_REQUIRE_SESSION")

    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    def __init__(self, **overrides) -> None:
        for key, value in overrides.items():
            if not hasattr(type(self), key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def redis_url(self) -> str:
        scheme = "rediss" if self.REDIS_SSL else "redis"
        auth = f":{self.REDIS_ACCESS_KEY}@" if self.REDIS_ACCESS_KEY else ""
        return f"{scheme}://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}"


settings = Settings()
