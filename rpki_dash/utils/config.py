#!/usr/bin/env python3
"""
Configuration Management for RPKI Dash

Provides centralized configuration handling with:
- Environment variable support
- Configuration file support
- Default values and validation
- Runtime configuration management
"""

import os
import json
import threading
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Optional, List
import logging


@dataclass
class FeedConfig:
    """Remote feed locations"""

    vrp_url: str = "http://rpki.surfnet.nl:8080/export.csv"
    routes_v4_url: str = "https://www.ris.ripe.net/dumps/riswhoisdump.IPv4.gz"
    routes_v6_url: str = "https://www.ris.ripe.net/dumps/riswhoisdump.IPv6.gz"
    registry_v4_url: str = "https://www.iana.org/assignments/ipv4-address-space/ipv4-address-space.csv"
    registry_v6_url: str = (
        "https://www.iana.org/assignments/ipv6-unicast-address-assignments/"
        "ipv6-unicast-address-assignments.csv"
    )
    timeout: int = 300

    def __post_init__(self):
        """Load from environment variables if not set"""
        for name in ("vrp_url", "routes_v4_url", "routes_v6_url",
                     "registry_v4_url", "registry_v6_url"):
            value = os.getenv(f"RPKI_DASH_{name.upper()}")
            if value:
                setattr(self, name, value)
        if os.getenv("RPKI_DASH_FEED_TIMEOUT"):
            try:
                self.timeout = int(os.getenv("RPKI_DASH_FEED_TIMEOUT"))
            except ValueError:
                pass


@dataclass
class StoreConfig:
    """Record store configuration"""

    db_path: str = "./rpki_dash.db"

    def __post_init__(self):
        """Load from environment variables if not set"""
        if os.getenv("RPKI_DASH_DB_PATH"):
            self.db_path = os.getenv("RPKI_DASH_DB_PATH")
        elif os.getenv("RPKI_DASH_MODE") == "system":
            self.db_path = "/var/lib/rpki-dash/rpki_dash.db"


@dataclass
class ConcurrencyConfig:
    """Admission gate configuration shared by all stages"""

    max_workers: int = 20
    show_progress: bool = False

    def __post_init__(self):
        """Load from environment variables if not set"""
        if os.getenv("RPKI_DASH_MAX_WORKERS"):
            try:
                self.max_workers = int(os.getenv("RPKI_DASH_MAX_WORKERS"))
            except ValueError:
                pass


@dataclass
class IngestionConfig:
    """Route dump filtering"""

    min_peer_count: int = 5

    def __post_init__(self):
        """Load from environment variables if not set"""
        if os.getenv("RPKI_DASH_MIN_PEER_COUNT"):
            try:
                self.min_peer_count = int(os.getenv("RPKI_DASH_MIN_PEER_COUNT"))
            except ValueError:
                pass


@dataclass
class ValidationConfig:
    """Validation pass behaviour"""

    reset_before_validation: bool = True

    def __post_init__(self):
        """Load from environment variables if not set"""
        if os.getenv("RPKI_DASH_RESET_BEFORE_VALIDATION"):
            self.reset_before_validation = (
                os.getenv("RPKI_DASH_RESET_BEFORE_VALIDATION").lower() in ["1", "true", "yes"]
            )


@dataclass
class RegistryConfig:
    """Registry annotation behaviour"""

    ipv4_match_mode: str = "cidr"

    def __post_init__(self):
        """Load from environment variables if not set"""
        if os.getenv("RPKI_DASH_IPV4_MATCH_MODE"):
            self.ipv4_match_mode = os.getenv("RPKI_DASH_IPV4_MATCH_MODE").lower()


@dataclass
class LoggingConfig:
    """Logging configuration"""

    level: str = "INFO"
    log_to_file: bool = False
    log_file: Optional[str] = None

    def __post_init__(self):
        """Load from environment variables if not set"""
        if os.getenv("RPKI_DASH_LOG_LEVEL"):
            self.level = os.getenv("RPKI_DASH_LOG_LEVEL").upper()
        if os.getenv("RPKI_DASH_LOG_FILE"):
            self.log_file = os.getenv("RPKI_DASH_LOG_FILE")
            self.log_to_file = True


@dataclass
class ReportConfig:
    """Snapshot summary output"""

    output_dir: Optional[str] = None

    def __post_init__(self):
        """Load from environment variables if not set"""
        if os.getenv("RPKI_DASH_REPORT_DIR"):
            self.output_dir = os.getenv("RPKI_DASH_REPORT_DIR")


@dataclass
class RPKIDashConfig:
    """Complete RPKI Dash configuration"""

    feeds: FeedConfig = field(default_factory=FeedConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    reports: ReportConfig = field(default_factory=ReportConfig)


SECTION_TYPES = {
    "feeds": FeedConfig,
    "store": StoreConfig,
    "concurrency": ConcurrencyConfig,
    "ingestion": IngestionConfig,
    "validation": ValidationConfig,
    "registry": RegistryConfig,
    "logging": LoggingConfig,
    "reports": ReportConfig,
}

IPV4_MATCH_MODES = ("cidr", "legacy")


class ConfigManager:
    """Configuration management for RPKI Dash"""

    DEFAULT_CONFIG_PATHS = [
        Path.home() / ".config/rpki-dash/config.json",
        Path("/etc/rpki-dash/config.json"),
        Path("./config.json"),
    ]

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration manager

        Args:
            config_path: Optional path to configuration file
        """
        self.logger = logging.getLogger(__name__)
        self.config_path = Path(config_path) if config_path else None
        self.config = RPKIDashConfig()

        self._load_config()

    def _load_config(self):
        """Load configuration from file and environment"""
        config_file = self._find_config_file()
        if config_file:
            try:
                self._load_from_file(config_file)
                self.logger.info(f"Loaded configuration from {config_file}")
            except (OSError, ValueError, TypeError) as e:
                self.logger.warning(f"Failed to load config file {config_file}: {e}")

        # Environment variables are loaded in __post_init__ methods
        self.logger.debug("Configuration loaded with environment variable overrides")

    def _find_config_file(self) -> Optional[Path]:
        """Find configuration file in default locations"""
        if self.config_path and self.config_path.exists():
            return self.config_path

        for path in self.DEFAULT_CONFIG_PATHS:
            if path.exists():
                return path

        return None

    def _load_from_file(self, config_path: Path):
        """Load configuration from JSON file"""
        with open(config_path, "r") as f:
            data = json.load(f)
        self._load_from_dict(data)

    def _load_from_dict(self, data: dict):
        """Load configuration from dictionary (side-effect-free)"""
        for section, section_type in SECTION_TYPES.items():
            if section in data:
                setattr(self.config, section, section_type(**data[section]))

    def save_config(self, config_path: Optional[Path] = None) -> Path:
        """
        Save current configuration to file

        Args:
            config_path: Path to save configuration (default: first default path)

        Returns:
            Path where configuration was saved
        """
        if config_path is None:
            config_path = self.DEFAULT_CONFIG_PATHS[0]

        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w") as f:
            json.dump(asdict(self.config), f, indent=2)

        self.logger.info(f"Configuration saved to {config_path}")
        return config_path

    def get_config(self) -> RPKIDashConfig:
        """Get current configuration"""
        return self.config

    def update_section(self, section: str, **kwargs):
        """Update a configuration section in place, ignoring unknown keys"""
        target = getattr(self.config, section)
        for key, value in kwargs.items():
            if value is not None and hasattr(target, key):
                setattr(target, key, value)

    def validate_config(self) -> List[str]:
        """Return a list of configuration issues (empty when valid)"""
        issues = []
        config = self.config

        if config.concurrency.max_workers < 1:
            issues.append(
                f"concurrency.max_workers must be positive, got {config.concurrency.max_workers}"
            )
        if config.ingestion.min_peer_count < 0:
            issues.append(
                f"ingestion.min_peer_count must not be negative, got {config.ingestion.min_peer_count}"
            )
        if config.feeds.timeout <= 0:
            issues.append(f"feeds.timeout must be positive, got {config.feeds.timeout}")
        if config.registry.ipv4_match_mode not in IPV4_MATCH_MODES:
            issues.append(
                f"registry.ipv4_match_mode must be one of {', '.join(IPV4_MATCH_MODES)}, "
                f"got '{config.registry.ipv4_match_mode}'"
            )
        if config.logging.level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            issues.append(f"logging.level is not a valid level: {config.logging.level}")
        for name in ("vrp_url", "routes_v4_url", "routes_v6_url",
                     "registry_v4_url", "registry_v6_url"):
            if not getattr(config.feeds, name):
                issues.append(f"feeds.{name} is empty")

        return issues


# Global configuration instance with thread-safe singleton pattern
_config_manager = None
_config_manager_lock = threading.RLock()


def get_config_manager(config_path: Optional[Path] = None) -> ConfigManager:
    """
    Get global configuration manager instance using double-checked locking.

    The first check is lockless; the lock is only taken during initialization.
    """
    global _config_manager

    if _config_manager is not None:
        return _config_manager

    with _config_manager_lock:
        if _config_manager is None:
            _config_manager = ConfigManager(config_path)

        return _config_manager


def reset_config_manager():
    """Drop the cached configuration manager (tests and re-configuration)"""
    global _config_manager

    with _config_manager_lock:
        _config_manager = None


def get_config() -> RPKIDashConfig:
    """Get current configuration"""
    return get_config_manager().get_config()
