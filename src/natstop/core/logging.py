"""structlog setup. Console output in development, JSON lines in production."""

import logging
import logging.config
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import structlog

from natstop.core.config import settings
from natstop.exceptions import ConfigError

Logger = structlog.stdlib.BoundLogger

# Third-party loggers held above the configured level
QUIET_LOGGERS: dict[str, str] = {
    "aiohttp.access": "WARNING",
    "asyncio": "WARNING",
}


def resolve_level(level: str | None = None) -> str:
    """
    Normalise a level name, falling back to settings.LOG_LEVEL.

    Raises:
        ConfigError: Not a stdlib level name
    """
    name = (level or settings.LOG_LEVEL).strip().upper()
    if name not in logging.getLevelNamesMapping():
        raise ConfigError(f"invalid log level '{level}'")
    return name


class LogFormat(ABC):
    """
    One way of rendering log records.

    structlog and stdlib records share the same pre-chain and end in the
    same ProcessorFormatter, so both come out in one format on stderr.
    """

    pre_chain: ClassVar[tuple[Any, ...]] = (
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.StackInfoRenderer(),
    )
    render_tracebacks: ClassVar[bool] = False

    @classmethod
    @abstractmethod
    def renderer(cls) -> Any:
        """Final processor turning the event dict into a line."""

    @classmethod
    def processors(cls) -> list[Any]:
        chain = list(cls.pre_chain)
        if cls.render_tracebacks:
            chain.append(structlog.processors.format_exc_info)
        chain.append(structlog.stdlib.ProcessorFormatter.wrap_for_formatter)
        return chain

    @classmethod
    def dict_config(cls, level: str) -> dict[str, Any]:
        loggers: dict[str, Any] = {
            "": {"handlers": ["stderr"], "level": level, "propagate": False},
        }
        for name, quiet_level in QUIET_LOGGERS.items():
            loggers[name] = {
                "handlers": ["stderr"],
                "level": quiet_level,
                "propagate": False,
            }

        # stdout is reserved for the live screen and CSV output
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "natstop": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        cls.renderer(),
                    ],
                    "foreign_pre_chain": list(cls.pre_chain),
                },
            },
            "handlers": {
                "stderr": {
                    "level": level,
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "natstop",
                },
            },
            "loggers": loggers,
        }

    @classmethod
    def apply(cls, level: str) -> None:
        logging.config.dictConfig(cls.dict_config(level))
        structlog.configure_once(
            processors=cls.processors(),
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )


class Development(LogFormat):
    @classmethod
    def renderer(cls) -> structlog.dev.ConsoleRenderer:
        return structlog.dev.ConsoleRenderer(colors=True)


class Production(LogFormat):
    render_tracebacks = True

    @classmethod
    def renderer(cls) -> structlog.processors.JSONRenderer:
        return structlog.processors.JSONRenderer()


def log_format() -> type[LogFormat]:
    return Production if settings.is_production else Development


def configure(level: str | None = None) -> None:
    """
    Configure stdlib logging and structlog for the process.

    Args:
        level: Level name overriding settings.LOG_LEVEL

    Raises:
        ConfigError: Unknown level name
    """
    log_format().apply(resolve_level(level))
