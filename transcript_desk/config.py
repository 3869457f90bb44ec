"""Configuration loader and validation."""

import logging
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from transcript_desk._types import ExportConfig, ExportType

logger = logging.getLogger(__name__)

__all__ = [
    "GatewayConfig",
    "SessionConfig",
    "ExportSettings",
    "ModelConfig",
    "GeneralConfig",
    "Config",
    "ConfigError",
    "load_config",
]

SECTIONS = ("gateway", "session", "export", "model", "general")


class ConfigError(Exception):
    """Configuration loading or validation error."""

    pass


@dataclass
class GatewayConfig:
    """Backend gateway configuration."""

    backend: str = "memory"
    api_key: str | None = None
    request_timeout: float = 30.0
    export_directory: str | None = None


@dataclass
class SessionConfig:
    """Recording session and live aggregation settings."""

    monotonic_duration: bool = False
    chunk_queue_size: int = 0
    shutdown_timeout: float = 5.0


@dataclass
class ExportSettings:
    """Default export options."""

    format: str = "Markdown"
    include_timestamps: bool = True
    include_chapters: bool = True
    custom_template: str | None = None

    def to_export_config(self) -> ExportConfig:
        """Build the ExportConfig sent to the backend.

        Raises:
            ConfigError: If the format name is unknown
        """
        return ExportConfig(
            format=parse_export_type(self.format),
            include_timestamps=self.include_timestamps,
            include_chapters=self.include_chapters,
            custom_template=self.custom_template,
        )


@dataclass
class ModelConfig:
    """Inference model selection."""

    name: str = "gemini-2.5-flash"


@dataclass
class GeneralConfig:
    """General application settings."""

    verbose: bool = False
    debug: bool = False


@dataclass
class Config:
    """Main configuration container."""

    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    export: ExportSettings = field(default_factory=ExportSettings)
    model: ModelConfig = field(default_factory=ModelConfig)
    general: GeneralConfig = field(default_factory=GeneralConfig)

    @classmethod
    def from_toml(
        cls,
        path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> "Config":
        """Load configuration from TOML file with environment overrides.

        Args:
            path: Explicit config file path. If None, searches in order:
                  1. TRANSCRIPT_DESK_CONFIG env var
                  2. ./transcript-desk.toml
                  3. ~/.config/transcript-desk.toml
            env: Environment variables for overrides (defaults to os.environ)

        Returns:
            Loaded Config instance

        Raises:
            ConfigError: If config file not found or values are invalid
        """
        if env is None:
            import os

            env = os.environ

        resolved_path = _resolve_config_path(path, env)
        raw_data = _load_toml_file(resolved_path)

        try:
            coerced = _coerce_config_values(raw_data, env)
            return cls(
                gateway=GatewayConfig(**coerced["gateway"]),
                session=SessionConfig(**coerced["session"]),
                export=ExportSettings(**coerced["export"]),
                model=ModelConfig(**coerced["model"]),
                general=GeneralConfig(**coerced["general"]),
            )
        except TypeError as e:
            raise ConfigError(f"Invalid configuration values: {e}") from e

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ConfigError: If any section is invalid
        """
        validate_gateway_config(self.gateway)
        validate_session_config(self.session)
        validate_export_settings(self.export)
        if not self.model.name:
            raise ConfigError("model.name must not be empty")


def _resolve_config_path(
    cli_path: Path | None,
    env: Mapping[str, str],
) -> Path:
    """Resolve configuration file path following search order.

    Search order:
    1. CLI-provided path
    2. TRANSCRIPT_DESK_CONFIG environment variable
    3. ./transcript-desk.toml (current directory)
    4. ~/.config/transcript-desk.toml (user config directory)

    Raises:
        ConfigError: If no config file found in any location
    """
    candidates = []

    if cli_path:
        cli_path = Path(cli_path)
        if cli_path.exists():
            logger.info("Using config file: %s", cli_path.resolve())
            return cli_path.resolve()
        raise ConfigError(f"Config file not found: {cli_path}")

    if env_path := env.get("TRANSCRIPT_DESK_CONFIG"):
        candidates.append(Path(env_path))

    candidates.append(Path("transcript-desk.toml"))
    candidates.append(Path.home() / ".config" / "transcript-desk.toml")

    for candidate in candidates:
        if candidate.exists():
            logger.info("Using config file: %s", candidate.resolve())
            return candidate.resolve()

    raise ConfigError(
        f"Config file not found. Searched: {', '.join(str(c) for c in candidates)}"
    )


def _load_toml_file(path: Path) -> dict:
    """Load and parse TOML configuration file.

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except Exception as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e


def _coerce_config_values(raw_data: dict, env: Mapping[str, str]) -> dict:
    """Normalize raw TOML data for dataclass instantiation.

    Missing sections fall back to defaults; the API key falls back to the
    TRANSCRIPT_DESK_API_KEY environment variable.
    """
    coerced = {}

    for section in SECTIONS:
        value = raw_data.get(section, {})
        if not isinstance(value, dict):
            raise ConfigError(f"Section [{section}] must be a table")
        coerced[section] = dict(value)

    unknown = sorted(set(raw_data) - set(SECTIONS))
    if unknown:
        logger.warning("Ignoring unknown config sections: %s", ", ".join(unknown))

    gateway_section = coerced["gateway"]
    if not gateway_section.get("api_key"):
        gateway_section["api_key"] = env.get("TRANSCRIPT_DESK_API_KEY")

    return coerced


def parse_export_type(value: str) -> ExportType:
    """Map a case-insensitive format name to ExportType.

    Raises:
        ConfigError: If the name is not a known format
    """
    normalized = value.strip().lower()
    aliases = {"md": ExportType.MARKDOWN}
    for export_type in ExportType:
        if export_type.value.lower() == normalized:
            return export_type
    if normalized in aliases:
        return aliases[normalized]
    raise ConfigError(
        f"Invalid export format '{value}'. "
        f"Must be one of: {', '.join(t.value for t in ExportType)}"
    )


def validate_gateway_config(gateway_cfg: GatewayConfig) -> None:
    """Validate gateway configuration.

    Raises:
        ConfigError: If gateway configuration is invalid
    """
    valid_backends = ("memory",)
    if gateway_cfg.backend not in valid_backends:
        raise ConfigError(
            f"Invalid backend '{gateway_cfg.backend}'. "
            f"Must be one of: {', '.join(valid_backends)}"
        )

    if gateway_cfg.request_timeout <= 0:
        raise ConfigError(
            f"request_timeout must be positive, got {gateway_cfg.request_timeout}"
        )


def validate_session_config(session_cfg: SessionConfig) -> None:
    """Validate session configuration.

    Raises:
        ConfigError: If session configuration is invalid
    """
    if session_cfg.chunk_queue_size < 0:
        raise ConfigError(
            f"chunk_queue_size must be non-negative, got {session_cfg.chunk_queue_size}"
        )

    if session_cfg.shutdown_timeout <= 0:
        raise ConfigError(
            f"shutdown_timeout must be positive, got {session_cfg.shutdown_timeout}"
        )


def validate_export_settings(export_cfg: ExportSettings) -> None:
    """Validate export defaults.

    Raises:
        ConfigError: If the export format is unknown
    """
    parse_export_type(export_cfg.format)


def load_config(
    path: Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> Config:
    """Load configuration from TOML file.

    Convenience wrapper around Config.from_toml().

    Raises:
        ConfigError: If config cannot be loaded
    """
    return Config.from_toml(path, env=env)
