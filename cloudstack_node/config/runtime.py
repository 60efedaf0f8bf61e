from __future__ import annotations

from dataclasses import dataclass
import os

INTERVAL_MIN = 300


class ConfigError(ValueError):
    """Raised when the collector is configured in a way it cannot run with."""


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def validate_interval(interval_seconds: int, debug_mode: bool) -> None:
    if interval_seconds <= 0:
        raise ConfigError("'interval' must be a positive number of seconds.")
    if not debug_mode and interval_seconds < INTERVAL_MIN:
        raise ConfigError(f"'interval' must be over {INTERVAL_MIN}.")


@dataclass(frozen=True)
class CollectorSettings:
    host: str
    api_key: str
    secret_key: str
    path: str = "/client/api"
    protocol: str = "https"
    port: int = 443
    domain_id: str | None = None
    tag: str = "cloudstack"
    ssl: bool = True
    debug_mode: bool = False
    interval_seconds: int = INTERVAL_MIN
    page_size: int = 500
    timeout_seconds: float = 30.0
    state_db_url: str = "sqlite:///logs/cloudstack_state.db"
    emit_path: str | None = None

    def __post_init__(self) -> None:
        if not (self.host and self.api_key and self.secret_key):
            raise ConfigError("'host' and 'apikey' and 'secretkey' must be all specified.")
        if self.protocol not in {"http", "https"}:
            raise ConfigError(f"'protocol' must be http or https, got {self.protocol!r}.")
        if self.page_size <= 0:
            raise ConfigError("'page_size' must be positive.")
        validate_interval(self.interval_seconds, self.debug_mode)

    @property
    def endpoint(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}{self.path}"

    @property
    def event_tag(self) -> str:
        return f"{self.tag}.event"

    @property
    def usages_tag(self) -> str:
        return f"{self.tag}.usages"

    @classmethod
    def from_env(cls) -> "CollectorSettings":
        domain_id = os.getenv("CLOUDSTACK_DOMAIN_ID", "").strip()
        emit_path = os.getenv("CLOUDSTACK_EMIT_PATH", "").strip()
        try:
            return cls(
                host=os.getenv("CLOUDSTACK_HOST", "").strip(),
                api_key=os.getenv("CLOUDSTACK_API_KEY", "").strip(),
                secret_key=os.getenv("CLOUDSTACK_SECRET_KEY", "").strip(),
                path=os.getenv("CLOUDSTACK_PATH", "/client/api").strip(),
                protocol=os.getenv("CLOUDSTACK_PROTOCOL", "https").strip().lower(),
                port=int(os.getenv("CLOUDSTACK_PORT", "443")),
                domain_id=domain_id or None,
                tag=os.getenv("CLOUDSTACK_TAG", "cloudstack").strip(),
                ssl=_env_flag("CLOUDSTACK_SSL", "true"),
                debug_mode=_env_flag("CLOUDSTACK_DEBUG_MODE", "false"),
                interval_seconds=int(os.getenv("CLOUDSTACK_INTERVAL_SECONDS", str(INTERVAL_MIN))),
                page_size=int(os.getenv("CLOUDSTACK_PAGE_SIZE", "500")),
                timeout_seconds=float(os.getenv("CLOUDSTACK_TIMEOUT_SECONDS", "30")),
                state_db_url=os.getenv("CLOUDSTACK_STATE_DB_URL", "sqlite:///logs/cloudstack_state.db").strip(),
                emit_path=emit_path or None,
            )
        except (TypeError, ValueError) as exc:
            if isinstance(exc, ConfigError):
                raise
            raise ConfigError(f"invalid collector settings: {exc}") from exc
