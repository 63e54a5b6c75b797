import os

ENV_OBSERVE_SEQUENCE_LOG_LEVEL = "OBSERVE_SEQUENCE_LOG_LEVEL"
ENV_OBSERVE_SEQUENCE_MAX_FLUSH_ITERATIONS = "OBSERVE_SEQUENCE_MAX_FLUSH_ITERATIONS"
ENV_OBSERVE_SEQUENCE_WARN_DUPLICATE_IDS = "OBSERVE_SEQUENCE_WARN_DUPLICATE_IDS"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def env_str(name: str) -> str | None:
    value = os.environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def env_int(name: str) -> int | None:
    value = env_str(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def env_bool(name: str) -> bool | None:
    value = os.environ.get(name)
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in _TRUTHY:
        return True
    if normalized in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {value!r}")


__all__ = [
    "ENV_OBSERVE_SEQUENCE_LOG_LEVEL",
    "ENV_OBSERVE_SEQUENCE_MAX_FLUSH_ITERATIONS",
    "ENV_OBSERVE_SEQUENCE_WARN_DUPLICATE_IDS",
    "env_bool",
    "env_int",
    "env_str",
]
