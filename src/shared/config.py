# Configuration loader with environment variable support
# YAML file supplies structure, environment supplies deployment overrides

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, validator
from pydantic_settings import BaseSettings

from .models import GeoSparqlBaseModel

logger = logging.getLogger(__name__)


class AppConfig(BaseModel):
    name: str = "geosparql-mcp"
    version: str = "0.1.0"
    log_level: str = "INFO"
    environment: str = "development"


class BackendConfig(BaseModel):
    """Connection parameters for one remote collaborator."""

    base_url: str
    path: Optional[str] = None
    timeout_seconds: float = Field(default=30.0, gt=0)

    @validator("base_url")
    def _strip_trailing_slash(cls, value):
        return value.rstrip("/")


class BackendsConfig(BaseModel):
    translator: BackendConfig
    graph_query: BackendConfig
    formatter: BackendConfig


class SessionsConfig(BaseModel):
    idle_ttl_seconds: int = Field(default=24 * 60 * 60, gt=0)
    purge_interval_seconds: int = Field(default=300, gt=0)


class WorkflowConfig(BaseModel):
    # Off by default: tool ordering is advisory only
    require_selection_before_translate: bool = False


class MapCenterConfig(BaseModel):
    lat: float = 51.2
    lng: float = 2.9


class MapConfig(BaseModel):
    default_zoom: int = 10
    min_zoom: int = 2
    max_zoom: int = 16
    default_center: MapCenterConfig = Field(default_factory=MapCenterConfig)

    @validator("max_zoom")
    def _zoom_range(cls, v, values):
        min_zoom = values.get("min_zoom", 0)
        if v < min_zoom:
            raise ValueError(f"max_zoom ({v}) must be >= min_zoom ({min_zoom})")
        return v


class Config(GeoSparqlBaseModel):
    """Main configuration model"""

    app: AppConfig = Field(default_factory=AppConfig)
    backends: BackendsConfig
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    map: MapConfig = Field(default_factory=MapConfig)


class Settings(BaseSettings):
    """Environment-based settings"""

    # Environment
    env: str = Field(default="development", alias="ENV")
    config_path: Optional[str] = Field(default=None, alias="CONFIG_PATH")

    # Backend overrides
    translator_url: Optional[str] = Field(default=None, alias="TRANSLATOR_URL")
    graph_query_url: Optional[str] = Field(default=None, alias="GRAPH_QUERY_URL")
    formatter_url: Optional[str] = Field(default=None, alias="FORMATTER_URL")

    # OpenTelemetry
    otel_exporter_otlp_endpoint: Optional[str] = Field(
        default=None, alias="OTEL_EXPORTER_OTLP_ENDPOINT"
    )
    otel_service_name: str = Field(default="geosparql-mcp", alias="OTEL_SERVICE_NAME")

    # Logging
    log_level: Optional[str] = Field(default=None, alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra environment variables


_config: Optional[Config] = None
_settings: Optional[Settings] = None


def _apply_env_overrides(config: Config, settings: Settings) -> None:
    overrides = {
        "translator": settings.translator_url,
        "graph_query": settings.graph_query_url,
        "formatter": settings.formatter_url,
    }
    for name, url in overrides.items():
        if url:
            backend = getattr(config.backends, name)
            backend.base_url = url.rstrip("/")
            logger.info(f"Backend {name} base_url overridden from environment")
    if settings.log_level:
        config.app.log_level = settings.log_level.upper()


def load_config() -> tuple[Config, Settings]:
    """
    Load configuration from YAML file and environment variables.

    Returns:
        tuple: (Config, Settings) - YAML config and environment settings

    Raises:
        FileNotFoundError: If config file not found
        pydantic.ValidationError: If the YAML does not match the Config model
    """
    settings = Settings()

    if settings.config_path:
        config_path = Path(settings.config_path)
    else:
        config_path = (
            Path(__file__).parent.parent.parent / "config" / f"{settings.env}.yaml"
        )

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from: {config_path}")

    with open(config_path, "r") as f:
        config_dict = yaml.safe_load(f) or {}

    config = Config(**config_dict)
    _apply_env_overrides(config, settings)
    return config, settings


def get_config() -> Config:
    """Get the global Config instance"""
    global _config, _settings
    if _config is None:
        _config, _settings = load_config()
    return _config


def get_settings() -> Settings:
    """Get the global Settings instance"""
    global _config, _settings
    if _settings is None:
        _config, _settings = load_config()
    return _settings


def init_config() -> tuple[Config, Settings]:
    """Initialize and cache global config instances"""
    global _config, _settings
    _config, _settings = load_config()
    return _config, _settings


def reload_config() -> tuple[Config, Settings]:
    """Force reload of config/settings from disk and environment."""
    global _config, _settings
    _config, _settings = load_config()
    return _config, _settings
