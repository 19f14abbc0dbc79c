import os
import re
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from dotenv import load_dotenv

DEFAULT_JWT_SECRET = "devsecret"
VERSION = "1.0.0"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(raw: Optional[str], default: int) -> int:
    """Parse "7d", "12h", "30m", "45s" or a bare number of seconds."""
    if raw is None:
        return default
    m = _DURATION_RE.match(str(raw).lower())
    if not m:
        return default
    seconds = int(m.group(1)) * _UNIT_SECONDS[m.group(2)]
    return seconds if seconds > 0 else default


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
        return value if value > 0 else default
    except ValueError:
        return default


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    return str(raw).lower() in {"1", "true", "yes", "on"}


def _csv(raw: Optional[str]) -> List[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


@dataclass
class Settings:
    env: str = "development"
    port: int = 3001
    database_url: str = "sqlite:///data/app.db"
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_expires_in: int = 7 * 86400
    mp_access_token: Optional[str] = None
    backend_url: str = "http://localhost:3001"
    frontend_url: Optional[str] = None
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    rate_limit_enabled: bool = False
    rate_limit_max: int = 100
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_redis_url: Optional[str] = None
    forwarded_allow_ips: str = "127.0.0.1"

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @property
    def gateway_configured(self) -> bool:
        return bool(self.mp_access_token)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        if env is None:
            load_dotenv()
            env = os.environ

        mode = env.get("ENV") or env.get("NODE_ENV") or "development"
        production = mode.lower() == "production"
        port = _int(env, "PORT", 3001)
        backend_url = (env.get("BACKEND_URL") or f"http://localhost:{port}").rstrip("/")
        frontend_url = (env.get("FRONTEND_URL") or "").rstrip("/") or None

        origins = _csv(env.get("ALLOWED_ORIGINS"))
        if not origins:
            origins = [u for u in (frontend_url, backend_url) if u] if production else ["*"]

        return cls(
            env=mode,
            port=port,
            database_url=env.get("DATABASE_URL") or "sqlite:///data/app.db",
            jwt_secret=env.get("JWT_SECRET") or DEFAULT_JWT_SECRET,
            jwt_expires_in=parse_duration(env.get("JWT_EXPIRES_IN"), 7 * 86400),
            mp_access_token=env.get("MP_ACCESS_TOKEN") or None,
            backend_url=backend_url,
            frontend_url=frontend_url,
            allowed_origins=origins,
            rate_limit_enabled=_bool(env, "RATE_LIMIT_ENABLED", production),
            rate_limit_max=_int(env, "RATE_LIMIT_MAX", 100),
            rate_limit_window_seconds=_int(env, "RATE_LIMIT_WINDOW_SECONDS", 15 * 60),
            rate_limit_redis_url=env.get("RATE_LIMIT_REDIS_URL") or None,
            forwarded_allow_ips=env.get("FORWARDED_ALLOW_IPS") or "127.0.0.1",
        )
