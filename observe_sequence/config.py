import logging
from contextvars import ContextVar, Token
from dataclasses import dataclass, replace
from typing import Any

from observe_sequence.env import (
    ENV_OBSERVE_SEQUENCE_LOG_LEVEL,
    ENV_OBSERVE_SEQUENCE_MAX_FLUSH_ITERATIONS,
    ENV_OBSERVE_SEQUENCE_WARN_DUPLICATE_IDS,
    env_bool,
    env_int,
    env_str,
)

PACKAGE_LOGGER = "observe_sequence"


@dataclass(frozen=True, slots=True)
class ObserveSequenceConfig:
    """Runtime settings.

    Attributes:
        max_flush_iterations: Number of passes a flush may take before it is
            considered an update cycle and aborted.
        warn_on_duplicate_ids: Log a warning when one snapshot contains the
            same _id twice.
        log_level: Level applied by `configure_logging()` when called without
            an explicit level. None leaves the logger untouched.
    """

    max_flush_iterations: int = 10_000
    warn_on_duplicate_ids: bool = True
    log_level: str | None = None

    def __post_init__(self) -> None:
        if self.max_flush_iterations < 1:
            raise ValueError(
                f"max_flush_iterations must be positive, got {self.max_flush_iterations}"
            )

    @classmethod
    def from_env(cls, **overrides: Any) -> "ObserveSequenceConfig":
        values: dict[str, Any] = {}
        max_iters = env_int(ENV_OBSERVE_SEQUENCE_MAX_FLUSH_ITERATIONS)
        if max_iters is not None:
            values["max_flush_iterations"] = max_iters
        warn = env_bool(ENV_OBSERVE_SEQUENCE_WARN_DUPLICATE_IDS)
        if warn is not None:
            values["warn_on_duplicate_ids"] = warn
        level = env_str(ENV_OBSERVE_SEQUENCE_LOG_LEVEL)
        if level is not None:
            values["log_level"] = level.upper()
        values.update(overrides)
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> "ObserveSequenceConfig":
        return replace(self, **overrides)


def get_config() -> ObserveSequenceConfig:
    return CONFIG.get()


def set_config(config: ObserveSequenceConfig) -> Token[ObserveSequenceConfig]:
    """Install `config` for the current context. Pass the token to `reset_config`."""
    return CONFIG.set(config)


def reset_config(token: Token[ObserveSequenceConfig]) -> None:
    CONFIG.reset(token)


def configure_logging(level: int | str | None = None) -> logging.Logger:
    """Set the level of the package logger. Handlers are left to the application."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    if level is None:
        level = get_config().log_level
    if level is not None:
        logger.setLevel(level.upper() if isinstance(level, str) else level)
    return logger


CONFIG: ContextVar[ObserveSequenceConfig] = ContextVar(
    "observe_sequence_config", default=ObserveSequenceConfig.from_env()
)
