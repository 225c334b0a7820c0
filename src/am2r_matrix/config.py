"""Bot settings loaded from TOML and the environment."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import TomlConfigSettingsSource

HOME_CONFIG_PATH = Path.home() / ".am2r-bot" / "am2r_bot.toml"
ENV_PREFIX = "AM2R_BOT__"

LogLevel = Literal["debug", "info", "warning", "error"]


class ConfigError(RuntimeError):
    pass


class MatrixSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    homeserver: str
    user_id: str
    access_token: str | None = None
    password: str | None = None
    device_id: str | None = None
    device_name: str = "AM2R Bot"
    # Empty means every joined room is served.
    room_ids: list[str] = []
    user_allowlist: list[str] | None = None
    auto_join: bool = True
    sync_store_path: Path | None = None

    @model_validator(mode="after")
    def _require_credentials(self) -> MatrixSettings:
        if not self.access_token and not self.password:
            raise ValueError("matrix.access_token or matrix.password is required")
        return self


class CommandSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    prefix: str = "!"
    startup_message: str | None = None

    @model_validator(mode="after")
    def _require_prefix(self) -> CommandSettings:
        if not self.prefix or any(ch.isspace() for ch in self.prefix):
            raise ValueError("commands.prefix must be non-empty without whitespace")
        return self


class WhereIsSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Local uploads are off: the homeserver media repo was too unreliable,
    # the alias table links hosted GIFs instead.
    attachments: bool = False
    assets_dir: Path = Path("whereis")


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: LogLevel = "info"
    json_output: bool = False


class BotSettings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="forbid",
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        str_strip_whitespace=True,
    )

    matrix: MatrixSettings
    commands: CommandSettings = CommandSettings()
    whereis: WhereIsSettings = WhereIsSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


def _resolve_config_path(path: str | Path | None) -> Path:
    return Path(path).expanduser() if path else HOME_CONFIG_PATH


def _ensure_config_file(cfg_path: Path) -> None:
    if cfg_path.exists() and not cfg_path.is_file():
        raise ConfigError(f"Config path {cfg_path} exists but is not a file.") from None
    if not cfg_path.exists():
        raise ConfigError(f"Missing config file {cfg_path}.") from None


def load_settings(path: str | Path | None = None) -> tuple[BotSettings, Path]:
    """Load settings from a TOML config file, with env overrides."""
    cfg_path = _resolve_config_path(path)
    _ensure_config_file(cfg_path)

    cfg = dict(BotSettings.model_config)
    cfg["toml_file"] = cfg_path
    Bound = type(
        "BotSettingsBound",
        (BotSettings,),
        {"model_config": SettingsConfigDict(**cfg)},
    )
    try:
        settings = Bound()
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {cfg_path}: {exc}") from exc
    except Exception as exc:
        raise ConfigError(f"Failed to load config {cfg_path}: {exc}") from exc

    whereis = settings.whereis
    if not whereis.assets_dir.is_absolute():
        # Relative asset paths are resolved against the config file.
        assets_dir = (cfg_path.parent / whereis.assets_dir.expanduser()).resolve()
        settings = settings.model_copy(
            update={"whereis": whereis.model_copy(update={"assets_dir": assets_dir})}
        )
    return settings, cfg_path
