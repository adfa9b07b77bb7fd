"""
Configuration Management System
===============================

Provides dataclass-based configuration with YAML file loading support.
All settings are validated and have sensible defaults.

Lookup order when no explicit file is given:

1. ``/etc/docwatch/config.yaml`` (system-wide)
2. ``~/.config/docwatch/config.yaml`` (per user)

Later files override earlier ones key by key within each section.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Any, Dict, Tuple
import os
import yaml
import logging

from docwatch.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SYSTEM_CONFIG_PATH = Path("/etc/docwatch/config.yaml")
USER_CONFIG_PATH = Path.home() / ".config" / "docwatch" / "config.yaml"

SPLIT_MODES = ("smart", "every-n-pages", "by-bookmarks")
LOG_LEVELS = ("debug", "info", "warning", "error")


def _optional_path(value: Optional[str]) -> Optional[Path]:
    """Expand ~ in a configured path, keeping None as None."""
    if value in (None, ""):
        return None
    return Path(value).expanduser()


def _bounded_int(data: Dict[str, Any], key: str, default: int, low: int, high: int) -> int:
    """Read an integer and check it falls within [low, high]."""
    raw = data.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}", config_key=key)
    if not low <= value <= high:
        raise ConfigurationError(
            f"{key} must be between {low} and {high}, got {value}",
            config_key=key,
        )
    return value


def _positive_float(data: Dict[str, Any], key: str, default: float) -> float:
    """Read a number that must be greater than zero."""
    raw = data.get(key, default)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {raw!r}", config_key=key)
    if value <= 0:
        raise ConfigurationError(f"{key} must be greater than 0, got {value}", config_key=key)
    return value


@dataclass
class WatchConfig:
    """Filesystem watch configuration.

    Attributes:
        patterns: Glob-like patterns for files to process (``*.ext`` or exact names).
        output_dir: Base directory for processed files (default: <watch>/organized).
        failed_dir: Directory for files that fail processing (default: <watch>/.failed).
        passthrough_dir: When set, failed files are forwarded here unchanged
            instead of going to ``failed_dir``.
        recursive: Whether to watch subdirectories.
        stability_ms: How long a file's size must stay unchanged before it
            is handed on (0 disables the check).
    """
    patterns: List[str] = field(default_factory=lambda: [
        "*.pdf", "*.jpg", "*.jpeg", "*.png", "*.tiff", "*.tif"
    ])
    output_dir: Optional[Path] = None
    failed_dir: Optional[Path] = None
    passthrough_dir: Optional[Path] = None
    recursive: bool = True
    stability_ms: int = 2000

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WatchConfig":
        """Create WatchConfig from dictionary."""
        if not data:
            return cls()

        patterns = data.get("patterns", cls().patterns)
        if not isinstance(patterns, list) or not all(isinstance(p, str) for p in patterns):
            raise ConfigurationError("patterns must be a list of strings", config_key="patterns")

        return cls(
            patterns=patterns,
            output_dir=_optional_path(data.get("output_dir")),
            failed_dir=_optional_path(data.get("failed_dir")),
            passthrough_dir=_optional_path(data.get("passthrough_dir")),
            recursive=bool(data.get("recursive", True)),
            stability_ms=_bounded_int(data, "stability_ms", cls.stability_ms, 0, 60000),
        )


@dataclass
class RateLimitConfig:
    """Queue concurrency, debounce and retry settings.

    Attributes:
        concurrency: Maximum files processed at once (1-10).
        debounce_ms: Quiet period before a file is considered ready.
        retry_attempts: Retries after the first failed attempt (0-10).
        retry_delay_ms: Base retry delay; doubled on every retry.
    """
    concurrency: int = 2
    debounce_ms: int = 1000
    retry_attempts: int = 3
    retry_delay_ms: int = 5000

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RateLimitConfig":
        """Create RateLimitConfig from dictionary."""
        if not data:
            return cls()
        return cls(
            concurrency=_bounded_int(data, "concurrency", cls.concurrency, 1, 10),
            debounce_ms=_bounded_int(data, "debounce_ms", cls.debounce_ms, 100, 60000),
            retry_attempts=_bounded_int(data, "retry_attempts", cls.retry_attempts, 0, 10),
            retry_delay_ms=_bounded_int(data, "retry_delay_ms", cls.retry_delay_ms, 1000, 300000),
        )


@dataclass
class SplitConfig:
    """PDF split job settings.

    Attributes:
        enabled: Route PDFs through the split job instead of rename.
        mode: Split strategy requested from the service.
        instructions: Free-text guidance for smart mode.
        pages_per_split: Page count for every-n-pages mode.
        poll_interval_ms: Delay between job status polls.
        max_poll_attempts: Polls before the job is abandoned.
        delete_source: Remove the source PDF after all outputs are downloaded.
    """
    enabled: bool = False
    mode: str = "smart"
    instructions: Optional[str] = None
    pages_per_split: Optional[int] = None
    poll_interval_ms: int = 2000
    max_poll_attempts: int = 300
    delete_source: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SplitConfig":
        """Create SplitConfig from dictionary."""
        if not data:
            return cls()

        mode = data.get("mode", cls.mode)
        if mode not in SPLIT_MODES:
            raise ConfigurationError(
                f"split mode must be one of {', '.join(SPLIT_MODES)}, got {mode!r}",
                config_key="mode",
            )

        pages_per_split = data.get("pages_per_split")
        if pages_per_split is not None:
            pages_per_split = _bounded_int(data, "pages_per_split", 1, 1, 10000)
        if mode == "every-n-pages" and pages_per_split is None:
            raise ConfigurationError(
                "pages_per_split is required when using every-n-pages mode",
                config_key="pages_per_split",
            )

        return cls(
            enabled=bool(data.get("enabled", cls.enabled)),
            mode=mode,
            instructions=data.get("instructions"),
            pages_per_split=pages_per_split,
            poll_interval_ms=_bounded_int(data, "poll_interval_ms", cls.poll_interval_ms, 100, 60000),
            max_poll_attempts=_bounded_int(data, "max_poll_attempts", cls.max_poll_attempts, 1, 10000),
            delete_source=bool(data.get("delete_source", cls.delete_source)),
        )


@dataclass
class HealthConfig:
    """Health endpoint settings."""
    enabled: bool = True
    socket_path: Path = Path("/tmp/docwatch-health.sock")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HealthConfig":
        """Create HealthConfig from dictionary."""
        if not data:
            return cls()
        return cls(
            enabled=bool(data.get("enabled", cls.enabled)),
            socket_path=Path(data.get("socket_path", str(cls.socket_path))).expanduser(),
        )


@dataclass
class LogSettings:
    """Logging section of the config file."""
    level: str = "info"
    json: bool = False
    file_output: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogSettings":
        """Create LogSettings from dictionary."""
        if not data:
            return cls()
        level = str(data.get("level", cls.level)).lower()
        if level == "warn":
            level = "warning"
        if level not in LOG_LEVELS:
            raise ConfigurationError(f"Unknown log level: {level}", config_key="level")
        return cls(
            level=level,
            json=bool(data.get("json", cls.json)),
            file_output=bool(data.get("file_output", cls.file_output)),
        )


@dataclass
class ServiceConfig:
    """Remote document service settings.

    Attributes:
        base_url: API root of the document service.
        token: Access token; falls back to the ``token_env`` variable.
        token_env: Environment variable holding the token.
        timeout_seconds: Per-request timeout.
    """
    base_url: str = "https://api.renamed.to/v1"
    token: Optional[str] = None
    token_env: str = "DOCWATCH_TOKEN"
    timeout_seconds: float = 60.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceConfig":
        """Create ServiceConfig from dictionary."""
        if not data:
            return cls()
        return cls(
            base_url=str(data.get("base_url", cls.base_url)).rstrip("/"),
            token=data.get("token"),
            token_env=data.get("token_env", cls.token_env),
            timeout_seconds=_positive_float(data, "timeout_seconds", cls.timeout_seconds),
        )

    def resolve_token(self) -> Optional[str]:
        """Return the configured token or the one from the environment."""
        return self.token or os.getenv(self.token_env)


@dataclass
class Config:
    """Main configuration container.

    Aggregates all configuration sections and provides loading from YAML.
    """
    watch: WatchConfig = field(default_factory=WatchConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    split: SplitConfig = field(default_factory=SplitConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    logging: LogSettings = field(default_factory=LogSettings)
    service: ServiceConfig = field(default_factory=ServiceConfig)
    dry_run: bool = False

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> Tuple["Config", List[Path]]:
        """Load configuration from YAML files.

        Args:
            config_path: Explicit configuration file. When None, the system
                        and user files are read in that order.

        Returns:
            The resolved Config and the list of files that were read.

        Raises:
            ConfigurationError: If a file is unreadable, not valid YAML, or
                                holds invalid values.
        """
        if config_path is not None:
            candidates = [Path(config_path).expanduser()]
        else:
            candidates = [SYSTEM_CONFIG_PATH, USER_CONFIG_PATH]

        merged: Dict[str, Any] = {}
        sources: List[Path] = []
        for path in candidates:
            data = cls._read_file(path)
            if data is None:
                continue
            sources.append(path)
            for section, values in data.items():
                if isinstance(values, dict) and isinstance(merged.get(section), dict):
                    merged[section] = {**merged[section], **values}
                else:
                    merged[section] = values

        if not sources:
            logger.debug("No config file found, using defaults")

        return cls._from_dict(merged), sources

    @staticmethod
    def _read_file(path: Path) -> Optional[Dict[str, Any]]:
        """Read one YAML file; None when it does not exist."""
        if not path.exists():
            return None

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", cause=e)
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}", cause=e)

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        logger.debug(f"Read configuration file {path}")
        return data

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        return cls(
            watch=WatchConfig.from_dict(data.get("watch", {})),
            rate_limit=RateLimitConfig.from_dict(data.get("rate_limit", {})),
            split=SplitConfig.from_dict(data.get("split", {})),
            health=HealthConfig.from_dict(data.get("health", {})),
            logging=LogSettings.from_dict(data.get("logging", {})),
            service=ServiceConfig.from_dict(data.get("service", {})),
            dry_run=bool(data.get("dry_run", False)),
        )
