"""
Configuration management for the keel service.

Loads config.yaml from the keel home directory ($KEEL_HOME, default ~/.keel).
A missing file yields the defaults; `keel init` writes one out.

This is the service's own configuration. The per-repository build
configuration (.keel.yaml) lives in keel.schemas.build_config.
"""

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml


class ConfigError(Exception):
    """Configuration validation error."""
    pass


LOG_FORMATS = ("structured", "pretty")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_keel_home() -> Path:
    """Return the keel home directory."""
    return Path(os.environ.get("KEEL_HOME", "~/.keel")).expanduser()


@dataclass
class KeelConfig:
    """
    Service configuration.

    Attributes:
        jobs_dir: Directory of the file-backed job store
        logs_dir: Directory of the file-backed log store
        compile_timeout: Seconds allowed for rendering+decoding one job spec (None = unbounded)
        log_level: Logging level
        log_format: "structured" (JSON) or "pretty"
        status_queue_size: Per-subscriber bound for live status updates
    """
    jobs_dir: Path
    logs_dir: Path
    compile_timeout: Optional[float] = 60.0
    log_level: str = "INFO"
    log_format: str = "structured"
    status_queue_size: int = 16

    @classmethod
    def defaults(cls, home: Optional[Path] = None) -> "KeelConfig":
        home = home or get_keel_home()
        return cls(jobs_dir=home / "jobs", logs_dir=home / "logs")

    @classmethod
    def from_dict(cls, data: dict[str, Any], home: Optional[Path] = None) -> "KeelConfig":
        """
        Build a config from a parsed YAML mapping, filling in defaults.

        Raises:
            ConfigError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {sorted(unknown)}")

        config = cls.defaults(home)
        if data.get("jobs_dir"):
            config.jobs_dir = Path(str(data["jobs_dir"])).expanduser()
        if data.get("logs_dir"):
            config.logs_dir = Path(str(data["logs_dir"])).expanduser()

        if "compile_timeout" in data:
            timeout = data["compile_timeout"]
            if timeout is not None:
                if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
                    raise ConfigError(f"compile_timeout must be a positive number or null, got {timeout!r}")
                timeout = float(timeout)
            config.compile_timeout = timeout

        if "log_level" in data:
            level = str(data["log_level"]).upper()
            if level not in LOG_LEVELS:
                raise ConfigError(f"log_level must be one of {LOG_LEVELS}, got {data['log_level']!r}")
            config.log_level = level

        if "log_format" in data:
            if data["log_format"] not in LOG_FORMATS:
                raise ConfigError(f"log_format must be one of {LOG_FORMATS}, got {data['log_format']!r}")
            config.log_format = data["log_format"]

        if "status_queue_size" in data:
            size = data["status_queue_size"]
            if isinstance(size, bool) or not isinstance(size, int) or size < 1:
                raise ConfigError(f"status_queue_size must be a positive integer, got {size!r}")
            config.status_queue_size = size

        return config

    def to_dict(self) -> dict[str, Any]:
        """Serialize for writing config.yaml."""
        data = asdict(self)
        data["jobs_dir"] = str(self.jobs_dir)
        data["logs_dir"] = str(self.logs_dir)
        return data


def load_config(config_path: Optional[Path] = None) -> KeelConfig:
    """
    Load service configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to $KEEL_HOME/config.yaml

    Returns:
        KeelConfig instance (defaults if the file does not exist)

    Raises:
        ConfigError: If the file is invalid
    """
    home = get_keel_home()
    if config_path is None:
        config_path = home / "config.yaml"

    if not config_path.exists():
        return KeelConfig.defaults(home)

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping")

    return KeelConfig.from_dict(data, home)
