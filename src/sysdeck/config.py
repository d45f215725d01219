"""Engine configuration for sysdeck."""

import json
import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path

from sysdeck.models import TemperatureRule

DEFAULT_SERVICES: tuple[str, ...] = (
    "sshd",
    "NetworkManager",
    "bluetooth",
    "ufw",
    "docker",
    "systemd-journald",
)

DEFAULT_TEMPERATURE_RULES: tuple[TemperatureRule, ...] = (
    TemperatureRule("package", 60),
    TemperatureRule("coretemp", 50),
    TemperatureRule("k10temp", 40),
    TemperatureRule("tctl", 30),
    TemperatureRule("cpu", 20),
    TemperatureRule("core", 10),
)

_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def default_autostart_dir() -> Path:
    """Return the XDG autostart directory of the current user."""
    config_home = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(config_home) / "autostart"


@dataclass(slots=True, frozen=True)
class EngineConfig:
    """Tunables of the telemetry engine."""

    privileged_account: str = "root"
    process_limit: int = 60
    services: tuple[str, ...] = DEFAULT_SERVICES
    autostart_dir: Path | None = None  # None means the XDG default
    probe_timeout: float = 2.0  # Seconds
    temperature_rules: tuple[TemperatureRule, ...] = DEFAULT_TEMPERATURE_RULES
    log_limit: int = 5
    log_priority: str = "3"  # journalctl priority; 3 = err and above
    poll_rate: float = 2.0  # Seconds
    log_level: str = "INFO"

    def resolved_autostart_dir(self) -> Path:
        """Return the configured autostart directory or the XDG default."""
        return self.autostart_dir if self.autostart_dir is not None else default_autostart_dir()

    @property
    def log_level_value(self) -> int:
        """Numeric logging level."""
        return logging.getLevelName(self.log_level)


def _build_rules(raw: list) -> tuple[TemperatureRule, ...]:
    rules: list[TemperatureRule] = []
    for index, item in enumerate(raw):
        if isinstance(item, str):
            # Bare strings keep their list order: earlier entries rank higher.
            rules.append(TemperatureRule(item.strip().lower(), len(raw) - index))
        elif isinstance(item, dict) and item.get("substring"):
            priority = item.get("priority", 0)
            if isinstance(priority, bool) or not isinstance(priority, int):
                raise ValueError(f"Invalid temperature rule priority: {priority!r}")
            rules.append(TemperatureRule(str(item["substring"]).strip().lower(), priority))
        else:
            raise ValueError(f"Invalid temperature rule: {item!r}")
    return tuple(rules)


def _list(payload: dict, key: str) -> list | None:
    value = payload.get(key)
    if value is not None and not isinstance(value, list):
        raise ValueError(f"{key} must be a list, got {type(value).__name__}")
    return value


def _number(payload: dict, key: str, default: float) -> float:
    value = payload.get(key, default)
    if isinstance(value, bool):
        raise ValueError(f"{key} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise ValueError(f"{key} must be finite, got {value!r}")
    return number


def _positive(payload: dict, key: str, default: float) -> float:
    value = _number(payload, key, default)
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


def _positive_int(payload: dict, key: str, default: int) -> int:
    value = int(_number(payload, key, default))
    if value < 1:
        raise ValueError(f"{key} must be at least 1, got {payload.get(key)!r}")
    return value


def load_config(path: str | Path) -> EngineConfig:
    """
    Load an EngineConfig from a JSON file.

    Missing keys take their defaults. Invalid values raise ValueError.
    """
    config_path = Path(path)
    payload = json.loads(config_path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Config root must be a JSON object")

    log_level = str(payload.get("log_level", "INFO")).strip().upper()
    if log_level not in _ALLOWED_LOG_LEVELS:
        raise ValueError(f"Invalid log_level: {log_level}. Expected one of {sorted(_ALLOWED_LOG_LEVELS)}")

    services = _list(payload, "services")
    if services is None:
        service_names = DEFAULT_SERVICES
    else:
        service_names = tuple(str(name).strip() for name in services if str(name).strip())

    raw_rules = _list(payload, "temperature_rules")
    rules = DEFAULT_TEMPERATURE_RULES if raw_rules is None else _build_rules(raw_rules)

    autostart = payload.get("autostart_dir")
    autostart_dir = Path(autostart).expanduser() if autostart else None

    privileged = str(payload.get("privileged_account", "root")).strip() or "root"

    return EngineConfig(
        privileged_account=privileged,
        process_limit=_positive_int(payload, "process_limit", 60),
        services=service_names,
        autostart_dir=autostart_dir,
        probe_timeout=_positive(payload, "probe_timeout", 2.0),
        temperature_rules=rules,
        log_limit=_positive_int(payload, "log_limit", 5),
        log_priority=str(payload.get("log_priority", "3")).strip() or "3",
        poll_rate=max(_number(payload, "poll_rate", 2.0), 0.1),
        log_level=log_level,
    )
