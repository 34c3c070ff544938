from enum import StrEnum
from typing import Any

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from natstop.exceptions import ConfigError


class Environment(StrEnum):
    development = "development"
    production = "production"


class SortKey(StrEnum):
    """Sort options accepted by the /connz endpoint"""

    cid = "cid"
    start = "start"
    subs = "subs"
    pending = "pending"
    msgs_to = "msgs_to"
    msgs_from = "msgs_from"
    bytes_to = "bytes_to"
    bytes_from = "bytes_from"
    last = "last"
    idle = "idle"
    uptime = "uptime"
    stop = "stop"
    reason = "reason"
    rtt = "rtt"


class Settings(BaseSettings):
    ENV: Environment = Environment.development
    LOG_LEVEL: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.ENV == Environment.production


class MonitorSettings(BaseSettings):
    """
    Monitoring target and display options.

    Every field can be set from the environment with the NATS_TOP_ prefix,
    e.g. NATS_TOP_HOST=10.0.0.5. Explicit init kwargs (the CLI) win.
    """

    model_config = SettingsConfigDict(env_prefix="NATS_TOP_")

    # Target
    host: str = "127.0.0.1"
    port: int = 8222
    https_port: int = 0  # 0 = plain HTTP on `port`

    # Polling
    conns: int = 1024
    delay: float = 1.0
    sort: SortKey = SortKey.cid
    request_timeout: float = 5.0

    # Display
    subs: bool = False
    show_rates: bool = False
    raw_bytes: bool = False
    lookup_dns: bool = False
    output_file: str = ""
    output_delimiter: str = ""
    max_refreshes: int = -1

    # TLS
    ca_cert: str = ""
    cert: str = ""
    key: str = ""
    skip_verify: bool = False

    # Exporter
    enable_http: bool = False
    http_host: str = "127.0.0.1"
    http_port: int = 9090

    @field_validator("delay", "request_timeout")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than 0")
        return value

    @field_validator("conns")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @property
    def use_tls(self) -> bool:
        return self.https_port != 0

    @property
    def base_url(self) -> str:
        if self.use_tls:
            return f"https://{self.host}:{self.https_port}"
        return f"http://{self.host}:{self.port}"

    @property
    def connz_params(self) -> dict[str, str]:
        """Query string for /connz, opaque to the rate engine"""
        params = {"limit": str(self.conns), "sort": self.sort.value}
        if self.subs:
            params["subs"] = "1"
        return params


settings = Settings()


def load_monitor_settings(**overrides: Any) -> MonitorSettings:
    """
    Build MonitorSettings from the environment plus explicit overrides.

    Raises:
        ConfigError: A value fails validation
    """
    try:
        return MonitorSettings(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(f"invalid settings: {problems}") from e
