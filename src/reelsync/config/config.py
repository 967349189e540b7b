"""Application configuration management for reelsync.

This module defines the settings model for the service and a settings
source that layers an optional YAML file beneath environment variables.
"""

from datetime import timedelta
from enum import Enum
import logging
from pathlib import Path
from typing import Any, Literal, Self, cast

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic.fields import FieldInfo
from pydantic_core import PydanticUndefined
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
import pytimeparse2  # pyright: ignore[reportMissingTypeStubs]
import yaml

from ..exceptions import ConfigLoadError
from .types import CronExpression

logger = logging.getLogger(__name__)


class RunMode(str, Enum):
    """One-shot administrative modes that run instead of the long-lived service."""

    SWEEP = "sweep"
    REPAIR = "repair"


class YamlFileFromFieldSource(PydanticBaseSettingsSource):
    """Load settings from the YAML file named by the ``config_file`` field.

    Runs after the environment sources so that ``CONFIG_FILE`` can point at
    the file. Values in the file only fill fields that the environment left
    unset.

    Attributes:
        yaml_file_encoding: Encoding to use when reading the YAML file.
        yaml_data: Data loaded from the file.
    """

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        yaml_file_encoding: str | None = None,
    ):
        super().__init__(settings_cls)
        self.yaml_file_encoding = yaml_file_encoding or "utf-8"
        self.yaml_data: dict[str, Any] = {}

    def _resolve_config_file(self) -> Path | None:
        value = self.current_state.get("config_file")
        if value in (None, PydanticUndefined):
            value = self.current_state.get("CONFIG_FILE")
        if value in (None, PydanticUndefined, ""):
            return None

        match value:
            case Path():
                return value.expanduser()
            case str():
                return Path(value).expanduser()
            case _:
                raise TypeError(
                    f"Field 'config_file' must resolve to a Path or string, "
                    f"received type '{type(value).__name__}'"
                )

    def _read_yaml_file(self, file_path: Path) -> dict[str, Any]:
        with Path.open(file_path, encoding=self.yaml_file_encoding) as f:
            loaded = yaml.safe_load(f)

        match loaded:
            case dict():
                return cast(dict[str, Any], loaded)
            case None:
                logger.info(
                    "YAML configuration file is empty.",
                    extra={"file_path": str(file_path)},
                )
                return {}
            case _:
                raise TypeError(
                    f"Invalid YAML config format: expected dict, got {type(loaded).__name__}"
                )

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        """Get value from loaded YAML data."""
        return self.yaml_data.get(field_name), field_name, self.field_is_complex(field)

    def __call__(self) -> dict[str, Any]:
        """Load the YAML file, if one is configured, and return its mapping."""
        try:
            yaml_path = self._resolve_config_file()
        except TypeError as e:
            raise ConfigLoadError(
                "Failed to resolve YAML configuration file path."
            ) from e

        if yaml_path is None:
            logger.debug("No YAML configuration file specified; skipping.")
            self.yaml_data = {}
            return {}

        logger.debug("Loading YAML configuration.", extra={"file_path": str(yaml_path)})
        try:
            self.yaml_data = self._read_yaml_file(yaml_path)
        except (TypeError, OSError, yaml.YAMLError) as e:
            raise ConfigLoadError(
                "Failed to load or parse YAML configuration file.",
                config_file=str(yaml_path),
            ) from e

        # Only keys naming a settings field are passed on.
        fields = self.settings_cls.model_fields
        return {k: v for k, v in self.yaml_data.items() if k in fields}


class AppSettings(BaseSettings):
    """Settings for the reelsync service.

    Loaded from init arguments, then environment variables, then the
    optional YAML file named by ``CONFIG_FILE``.

    Attributes:
        run_mode: One-shot mode to run instead of the service, if any.
        log_format: Format for application logs (human or json).
        log_level: Logging level for the application.
        log_include_stacktrace: Include full stack traces in error logs.
        environment: Deployment environment name.
        data_dir: Root directory for application data (the database lives here).
        server_host: Host address for both HTTP servers.
        server_port: Port for the public webhook server.
        admin_server_port: Port for the private admin server.
        mux_token_id: Provider API access token id.
        mux_token_secret: Provider API access token secret.
        mux_api_base_url: Base URL of the provider API.
        mux_webhook_secret: Shared secret for webhook signatures.
        webhook_signature_tolerance: Maximum age in seconds of a signature timestamp.
        skip_webhook_verification: Bypass signature checks (never in production).
        webhook_timeout: Overall deadline in seconds for one webhook ingest.
        cas_max_attempts: Compare-and-swap attempts before giving up.
        sweep_schedule: Cron schedule for the periodic sweep.
        sweep_staleness_threshold: Age after which in-flight records are swept.
        sweep_concurrency: Maximum records reconciled at once.
        sweep_repair_identifiers: Run the identifier repair pass before each full sweep.
        provider_timeout: Deadline in seconds for each provider call.
        provider_list_timeout: Deadline in seconds for the bulk asset listing.
        config_file: Optional path to a YAML settings file.
    """

    run_mode: RunMode | None = Field(
        default=None,
        validation_alias="RUN_MODE",
        description="One-shot administrative mode ('sweep' or 'repair'); unset runs the service.",
    )

    # Logging
    log_format: Literal["human", "json"] = Field(
        default="json",
        validation_alias="LOG_FORMAT",
        description="Format for application logs ('human' or 'json').",
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Logging level for the application (e.g., DEBUG, INFO, WARNING). Case-insensitive.",
    )
    log_include_stacktrace: bool = Field(
        default=False,
        validation_alias="LOG_INCLUDE_STACKTRACE",
        description="Include full stack traces in error logs (true/false).",
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="production",
        validation_alias="ENVIRONMENT",
        description="Deployment environment. Signature checks can only be skipped outside production.",
    )
    data_dir: Path = Field(
        default=Path("/data"),
        validation_alias="DATA_DIR",
        description="Root directory for application data.",
    )

    # Servers
    server_host: str = Field(
        default="0.0.0.0",
        validation_alias="SERVER_HOST",
        description="Host address for the HTTP servers to bind to.",
    )
    server_port: int = Field(
        default=8030,
        validation_alias="SERVER_PORT",
        description="Port for the public webhook server.",
    )
    admin_server_port: int = Field(
        default=8031,
        validation_alias="ADMIN_SERVER_PORT",
        description="Port for the private admin server. Do not expose it publicly.",
    )

    # Provider
    mux_token_id: str = Field(
        default="",
        validation_alias="MUX_TOKEN_ID",
        description="Mux API access token id.",
    )
    mux_token_secret: SecretStr = Field(
        default=SecretStr(""),
        validation_alias="MUX_TOKEN_SECRET",
        description="Mux API access token secret.",
    )
    mux_api_base_url: str = Field(
        default="https://api.mux.com",
        validation_alias="MUX_API_BASE_URL",
        description="Base URL of the Mux API.",
    )
    mux_webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        validation_alias="MUX_WEBHOOK_SECRET",
        description="Shared secret used to sign Mux webhooks.",
    )
    provider_timeout: float = Field(
        default=10.0,
        gt=0,
        validation_alias="PROVIDER_TIMEOUT",
        description="Deadline in seconds for each call to the Mux API.",
    )
    provider_list_timeout: float = Field(
        default=60.0,
        gt=0,
        validation_alias="PROVIDER_LIST_TIMEOUT",
        description="Deadline in seconds for listing every asset during a full sweep.",
    )

    # Webhooks
    webhook_signature_tolerance: int = Field(
        default=300,
        ge=0,
        validation_alias="WEBHOOK_SIGNATURE_TOLERANCE",
        description="Maximum distance in seconds between a signature timestamp and now.",
    )
    skip_webhook_verification: bool = Field(
        default=False,
        validation_alias="SKIP_WEBHOOK_VERIFICATION",
        description="Skip webhook signature checks. Refused when ENVIRONMENT is production.",
    )
    webhook_timeout: float = Field(
        default=20.0,
        gt=0,
        validation_alias="WEBHOOK_TIMEOUT",
        description="Overall deadline in seconds for ingesting one webhook delivery.",
    )
    cas_max_attempts: int = Field(
        default=5,
        ge=1,
        validation_alias="CAS_MAX_ATTEMPTS",
        description="Compare-and-swap attempts before a write is reported as contended.",
    )

    # Sweep
    sweep_schedule: CronExpression = Field(
        default=CronExpression("*/5 * * * *"),
        validation_alias="SWEEP_SCHEDULE",
        description="Cron schedule for the periodic reconciliation sweep.",
    )
    sweep_staleness_threshold: timedelta = Field(
        default=timedelta(minutes=5),
        validation_alias="SWEEP_STALENESS_THRESHOLD",
        description="Age after which uploading/processing records are swept (e.g. '5m', '1h').",
    )
    sweep_concurrency: int = Field(
        default=4,
        ge=1,
        validation_alias="SWEEP_CONCURRENCY",
        description="Maximum number of records reconciled concurrently.",
    )
    sweep_repair_identifiers: bool = Field(
        default=True,
        validation_alias="SWEEP_REPAIR_IDENTIFIERS",
        description="Run the identifier repair pass before each full sweep.",
    )

    config_file: Path | None = Field(
        default=None,
        validation_alias="CONFIG_FILE",
        description="Optional path to a YAML settings file.",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        yaml_file_encoding="utf-8",
        cli_parse_args=True,
        cli_ignore_unknown_args=True,
        cli_kebab_case=True,
        extra="ignore",
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    @property
    def db_dir(self) -> Path:
        """Directory holding the SQLite database file."""
        return self.data_dir / "db"

    @field_validator("sweep_schedule", mode="before")
    @classmethod
    def parse_sweep_schedule(cls, v: Any) -> CronExpression:
        """Parse the sweep schedule into a CronExpression.

        Args:
            v: A cron string or an existing CronExpression.

        Returns:
            CronExpression instance.

        Raises:
            ValueError: If the expression is empty or invalid.
            TypeError: If the value is not a string or CronExpression.
        """
        match v:
            case CronExpression():
                return v
            case str() if v.strip():
                return CronExpression(v.strip())
            case str():
                raise ValueError("sweep_schedule cannot be empty")
            case _:
                raise TypeError(
                    f"sweep_schedule must be a cron expression string, got {type(v).__name__}"
                )

    @field_validator("sweep_staleness_threshold", mode="before")
    @classmethod
    def parse_staleness_threshold(cls, v: Any) -> timedelta:
        """Parse a duration such as '5m', '90s' or '1 hour' into a timedelta.

        Raises:
            ValueError: If the duration cannot be parsed or is not positive.
            TypeError: If the value is not a string, number or timedelta.
        """
        match v:
            case timedelta():
                seconds: float = v.total_seconds()
            case int() | float():
                seconds = float(v)
            case str() as s:
                parsed = cast(
                    int | float | None,
                    pytimeparse2.parse(s.strip()),  # pyright: ignore[reportUnknownMemberType]
                )
                if parsed is None:
                    raise ValueError(
                        f"Invalid duration format: '{s}'. Examples: '90s', '5m', '1h'"
                    )
                seconds = float(parsed)
            case _:
                raise TypeError(
                    f"sweep_staleness_threshold must be a duration string, got {type(v).__name__}"
                )
        if seconds <= 0:
            raise ValueError("sweep_staleness_threshold must be positive")
        return timedelta(seconds=seconds)

    @model_validator(mode="after")
    def check_verification_bypass(self) -> Self:
        """Refuse to skip webhook signature checks in production."""
        if self.skip_webhook_verification and self.environment == "production":
            raise ValueError(
                "SKIP_WEBHOOK_VERIFICATION cannot be enabled when ENVIRONMENT is production"
            )
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Order settings sources so the YAML file sits beneath the environment.

        Args:
            settings_cls: The settings class being configured.
            init_settings: Settings from initialization parameters.
            env_settings: Settings from environment variables.
            dotenv_settings: Settings from .env files.
            file_secret_settings: Settings from secret files.

        Returns:
            Tuple of settings sources in priority order.
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlFileFromFieldSource(settings_cls=settings_cls),
            file_secret_settings,
        )
