"""
config.py

Run configuration for the inventory and destructive drive runs.

Values are layered: dataclass defaults, then an optional YAML file
(``--config`` or ``HWCHECK_CONFIG``), then environment variables, then
explicit overrides from the command line.
"""

import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import yaml

from hwcheck.core.errors import ConfigError

CONFIG_ENV = "HWCHECK_CONFIG"

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhd]?)\s*$", re.IGNORECASE)
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def parse_duration(value: Any) -> float:
    """Parse ``600``, ``"600s"``, ``"10m"`` or ``"1h"`` into seconds."""
    if isinstance(value, bool):
        raise ValueError(f"not a duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        match = _DURATION_RE.match(str(value))
        if not match:
            raise ValueError(f"not a duration: {value!r}")
        seconds = float(match.group(1)) * _DURATION_UNITS[match.group(2).lower()]
    if seconds < 0:
        raise ValueError(f"negative duration: {value!r}")
    return seconds


def parse_bool(value: Any) -> bool:
    """Parse shell-style truthy/falsy values."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def parse_positive_int(value: Any) -> int:
    number = int(value)
    if number < 1:
        raise ValueError(f"must be >= 1: {value!r}")
    return number


def parse_device_list(value: Any) -> List[str]:
    """Accept a whitespace separated string or a list of device paths."""
    if isinstance(value, str):
        return value.split()
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    raise ValueError(f"not a device list: {value!r}")


def parse_optional_str(value: Any) -> Optional[str]:
    text = str(value).strip() if value is not None else ""
    return text or None


def parse_optional_path(value: Any) -> Optional[Path]:
    text = parse_optional_str(value)
    return Path(text).expanduser() if text else None


def _opt(default: Any, parse: Callable[[Any], Any], env: Optional[str] = None, **kwargs):
    metadata = {"parse": parse, "env": env}
    if callable(default):
        return field(default_factory=default, metadata=metadata, **kwargs)
    return field(default=default, metadata=metadata, **kwargs)


class _LayeredConfig:
    """Shared loading logic for the flat config dataclasses."""

    SECTION = ""

    @classmethod
    def load(
        cls,
        path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ):
        """Build a config from defaults, YAML, environment and overrides."""
        environ = os.environ if environ is None else environ
        raw: Dict[str, Any] = {}

        config_path = path or environ.get(CONFIG_ENV)
        if config_path:
            raw.update(cls._read_yaml(Path(config_path)))

        for f in fields(cls):
            env_name = f.metadata.get("env")
            if env_name and environ.get(env_name, "").strip():
                raw[f.name] = environ[env_name]

        raw.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**cls._coerce(raw))

    @classmethod
    def _read_yaml(cls, path: Path) -> Dict[str, Any]:
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        section = data.get(cls.SECTION) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"Section '{cls.SECTION}' in {path} must be a mapping")
        return section

    @classmethod
    def _coerce(cls, raw: Dict[str, Any]) -> Dict[str, Any]:
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(raw) - set(known))
        if unknown:
            raise ConfigError(f"Unknown {cls.SECTION} option(s): {', '.join(unknown)}")

        values = {}
        for name, value in raw.items():
            parse = known[name].metadata["parse"]
            try:
                values[name] = parse(value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid value for {name}: {e}") from e
        return values


@dataclass
class InventoryConfig(_LayeredConfig):
    """Options for the safe inventory run."""

    SECTION = "inventory"

    cpu_stress_seconds: float = _opt(600.0, parse_duration, "CPU_STRESS_DURATION")
    gpu_stress_seconds: float = _opt(600.0, parse_duration, "GPU_STRESS_DURATION")
    sensors_interval: float = _opt(1.0, parse_duration, "SENSORS_SAMPLING_SECS")
    gpu_poll_interval: float = _opt(2.0, parse_duration)
    turbostat_seconds: float = _opt(60.0, parse_duration)
    dmesg_since: str = _opt("-1hour", str)
    fio_seconds: float = _opt(30.0, parse_duration)
    iperf_server: Optional[str] = _opt(None, parse_optional_str, "IPERF_SERVER")
    iperf_seconds: float = _opt(10.0, parse_duration)
    iperf_streams: int = _opt(4, parse_positive_int)
    extra_tests: bool = _opt(True, parse_bool, "EXTRA_TESTS")
    csv_prefix: str = _opt("system_inventory", str, "CSV_PREFIX")
    output_dir: Path = _opt(Path("."), Path, "OUTPUT_DIR")
    scratch_dir: Optional[Path] = _opt(None, parse_optional_path)
    gpu_burn_path: str = _opt("gpu-burn/gpu_burn", str, "GPU_BURN_PATH")
    memtest_min_mb: int = _opt(256, parse_positive_int)
    kill_grace_seconds: float = _opt(10.0, parse_duration)


@dataclass
class DriveTestConfig(_LayeredConfig):
    """Options for the destructive drive run."""

    SECTION = "drive_test"

    target_disks: List[str] = _opt(list, parse_device_list, "TARGET_DISKS")
    enable_blkdiscard: bool = _opt(False, parse_bool, "ENABLE_BLKDISCARD")
    badblocks_passes: int = _opt(1, parse_positive_int, "BADBLOCKS_PASSES")
    fio_runtime: float = _opt(180.0, parse_duration, "FIO_RUNTIME")
    csv_prefix: str = _opt("drive_health", str, "CSV_PREFIX")
    output_dir: Path = _opt(Path("."), Path, "OUTPUT_DIR")
    force: bool = _opt(False, parse_bool, "FORCE")
    smart_poll_interval: float = _opt(60.0, parse_duration, "SMART_POLL_INTERVAL")
    smart_max_wait: float = _opt(48 * 3600.0, parse_duration)
