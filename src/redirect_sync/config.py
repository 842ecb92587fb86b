"""Configuration management for the redirect sync tool."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .constants import (
    DEFAULT_BASE_DELAY_S,
    DEFAULT_EXPORT_CONCURRENCY,
    DEFAULT_MAX_DELAY_S,
    DEFAULT_MAX_RETRIES,
    DEFAULT_WRITE_BATCH_SIZE,
    MAX_ENTRIES_PER_REQUEST,
    MAX_RESTARTS,
    METAINFO_FILE,
    PAGE_FETCH_TIMEOUT_S,
    RESTART_INTERVAL_S,
)


@dataclass
class RemoteConfig:
    """Rewriter API connection configuration."""

    url: str
    token: str | None = None
    account: str = ""
    workspace: str = "master"
    timeout: float = 30.0
    verify_ssl: bool = True


@dataclass
class RetryConfig:
    """Per-call retry policy for remote requests."""

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY_S
    max_delay: float = DEFAULT_MAX_DELAY_S


@dataclass
class TransferConfig:
    """
    Batching, concurrency and restart settings for transfers.

    export_concurrency and write_batch_size drive exports; batch_size and
    concurrency drive imports and deletes.
    """

    export_concurrency: int = DEFAULT_EXPORT_CONCURRENCY
    write_batch_size: int = DEFAULT_WRITE_BATCH_SIZE
    batch_size: int = MAX_ENTRIES_PER_REQUEST
    concurrency: int = 1
    page_timeout: float = PAGE_FETCH_TIMEOUT_S
    max_restarts: int = MAX_RESTARTS
    restart_interval: float = RESTART_INTERVAL_S
    metainfo_file: str = METAINFO_FILE


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"
    file: Path | None = None


@dataclass
class SyncConfig:
    """
    Complete configuration for the redirect sync tool.

    This combines all configuration sections.
    """

    remote: RemoteConfig | None = None
    retry: RetryConfig = field(default_factory=RetryConfig)
    transfer: TransferConfig = field(default_factory=TransferConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, config_path: Path) -> "SyncConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to YAML config file

        Returns:
            SyncConfig instance
        """
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(
                f"Invalid configuration file structure in {config_path}: "
                f"expected dictionary, got {type(data).__name__}"
            )

        remote_data = data.get("remote")
        remote = RemoteConfig(**remote_data) if remote_data else None

        logging_data = dict(data.get("logging") or {})
        if logging_data.get("file"):
            logging_data["file"] = Path(logging_data["file"])

        return cls(
            remote=remote,
            retry=RetryConfig(**(data.get("retry") or {})),
            transfer=TransferConfig(**(data.get("transfer") or {})),
            logging=LoggingConfig(**logging_data),
        )

    def to_file(self, config_path: Path) -> None:
        """
        Save configuration to YAML file.

        Args:
            config_path: Path to save config file
        """
        data = {
            "remote": self.remote.__dict__ if self.remote else None,
            "retry": self.retry.__dict__,
            "transfer": self.transfer.__dict__,
            "logging": {
                k: str(v) if isinstance(v, Path) else v
                for k, v in self.logging.__dict__.items()
                if v is not None
            },
        }

        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """
        Create configuration from environment variables.

        Environment variables:
            REDIRECTS_API_URL: Rewriter GraphQL endpoint
            REDIRECTS_API_TOKEN: Bearer token sent with every request
            REDIRECTS_ACCOUNT: Account name (checkpoint fingerprint seed)
            REDIRECTS_WORKSPACE: Workspace name (default: master)
            EXPORT_CONCURRENCY: In-flight export page window (default: 5)
            EXPORT_BATCH_SIZE: Rows per export file write (default: 100)
            LOG_LEVEL: Logging level (default: INFO)
            LOG_FORMAT: console or json (default: console)

        Returns:
            SyncConfig instance

        Raises:
            ValueError: If a numeric variable is not an integer
        """
        remote = None
        url = os.environ.get("REDIRECTS_API_URL")
        if url:
            remote = RemoteConfig(
                url=url,
                token=os.environ.get("REDIRECTS_API_TOKEN") or None,
                account=os.environ.get("REDIRECTS_ACCOUNT", ""),
                workspace=os.environ.get("REDIRECTS_WORKSPACE", "master"),
            )

        transfer = TransferConfig(
            export_concurrency=_int_env("EXPORT_CONCURRENCY", DEFAULT_EXPORT_CONCURRENCY),
            write_batch_size=_int_env("EXPORT_BATCH_SIZE", DEFAULT_WRITE_BATCH_SIZE),
        )

        logging_config = LoggingConfig(
            level=os.environ.get("LOG_LEVEL", "INFO"),
            format=os.environ.get("LOG_FORMAT", "console"),
        )

        return cls(
            remote=remote,
            retry=RetryConfig(),
            transfer=transfer,
            logging=logging_config,
        )


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


def load_config(config_file: Path | None = None) -> SyncConfig:
    """
    Load configuration from file or environment variables.

    Args:
        config_file: Optional path to YAML config file

    Returns:
        SyncConfig instance

    Raises:
        FileNotFoundError: If config_file is specified but doesn't exist
    """
    if config_file:
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_file}")
        return SyncConfig.from_file(config_file)
    return SyncConfig.from_env()
