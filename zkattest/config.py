"""
zkattest Configuration

Settings fall into three groups: the proving backend, the presentation
exchange and logging. Each value resolves, highest precedence first, from:

    1. its environment variable (ZKATTEST_*)
    2. a runtime override or a loaded YAML file
    3. its default

A YAML file named by ZKATTEST_CONFIG is applied when the manager is created
and again on every `reset()`.

Domain-separation prefixes are not configuration; see `zkattest.hashing`.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Optional, TypeVar, Union

import yaml

T = TypeVar("T")

CONFIG_FILE_ENV = "ZKATTEST_CONFIG"

_TRUE_WORDS = ("true", "1", "yes", "on")
_FALSE_WORDS = ("false", "0", "no", "off")


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """A configuration value was rejected by its validator."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """One setting: a default, an optional environment binding and a validator."""
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)

    def get(self) -> T:
        if self.env_var and self.env_var in os.environ:
            value = self._from_env(os.environ[self.env_var])
            self._check(value, self.env_var)
            return value
        return self._value if self._value is not None else self.default

    def set(self, value: T, path: str = "") -> None:
        self._check(value, path)
        self._value = value

    def reset(self) -> None:
        self._value = None

    def _check(self, value: Any, where: str) -> None:
        if type(value) is not type(self.default):
            raise ConfigValidationError(
                f"{where or 'config'}: expected {type(self.default).__name__}, got {value!r}"
            )
        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"{where or 'config'}: invalid value {value!r} ({self.description})")

    def _from_env(self, raw: str) -> Any:
        kind = type(self.default)
        if kind is bool:
            word = raw.strip().lower()
            if word in _TRUE_WORDS:
                return True
            if word in _FALSE_WORDS:
                return False
            raise ConfigValidationError(f"{self.env_var}: not a boolean: {raw!r}")
        if kind is int:
            try:
                return int(raw)
            except ValueError as ex:
                raise ConfigValidationError(f"{self.env_var}: not an integer: {raw!r}") from ex
        return raw


@dataclass
class ProverConfig:
    proofs_enabled: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="ZKATTEST_PROOFS_ENABLED",
        description="produce real proofs; when false, constraints are checked but proofs are placeholders",
    ))


@dataclass
class ExchangeConfig:
    validate_schemas: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="ZKATTEST_VALIDATE_SCHEMAS",
        description="validate incoming JSON against the wire schemas before deserializing",
    ))
    nonce_ttl_hours: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=168,
        env_var="ZKATTEST_NONCE_TTL_HOURS",
        description="hours a verifier remembers accepted client nonces, must be positive",
        validator=lambda x: x > 0,
    ))


@dataclass
class ObservabilityConfig:
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="ZKATTEST_LOG_LEVEL",
        description="one of debug, info, warning, error, critical",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="ZKATTEST_LOG_FORMAT",
        description="json or text",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class ZkAttestConfig:
    prover: ProverConfig = field(default_factory=ProverConfig)
    exchange: ExchangeConfig = field(default_factory=ExchangeConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)


class ConfigManager:
    """
    Process-wide holder of the active `ZkAttestConfig`.

    Thread-safe singleton; `get_config_manager()` returns it.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._config = ZkAttestConfig()
                cls._instance = instance
                instance._load_env_file()
            return cls._instance

    @property
    def config(self) -> ZkAttestConfig:
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Apply a YAML file of nested groups, e.g. `exchange: {nonce_ttl_hours: 24}`."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file must contain a mapping: {path}")
        self._apply(self._config, data, "")

    def _apply(self, group: Any, values: Dict[str, Any], prefix: str) -> None:
        names = {f.name for f in fields(group)}
        for key, value in values.items():
            path = f"{prefix}{key}"
            if key not in names:
                raise ConfigError(f"Unknown config key: {path}")
            target = getattr(group, key)
            if isinstance(target, ConfigValue):
                target.set(value, path)
            elif is_dataclass(target) and isinstance(value, dict):
                self._apply(target, value, f"{path}.")
            else:
                raise ConfigError(f"Config group {path} must be a mapping")

    def _load_env_file(self) -> None:
        path = os.environ.get(CONFIG_FILE_ENV)
        if path:
            self.load_from_file(path)

    def set(self, path: str, value: Any) -> None:
        """Override one value by dotted path, e.g. `set("prover.proofs_enabled", False)`."""
        target = self._resolve(path)
        if not isinstance(target, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        target.set(value, path)

    def get(self, path: str) -> Any:
        target = self._resolve(path)
        if not isinstance(target, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        return target.get()

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not is_dataclass(obj) or part not in {f.name for f in fields(obj)}:
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def reset(self) -> None:
        """Drop runtime overrides, then re-apply the ZKATTEST_CONFIG file if one is set."""
        self._config = ZkAttestConfig()
        self._load_env_file()


def get_config() -> ZkAttestConfig:
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    return ConfigManager()
