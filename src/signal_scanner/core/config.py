"""
Settings for the scanner.

Layering: built-in defaults < config.yaml (project root) < environment
variables (a .env file at the project root is loaded first).
"""

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, PositiveInt, field_validator

BASE_DIR = Path(__file__).resolve().parent.parent.parent.parent
CONFIG_PATH = BASE_DIR / "config.yaml"
ENV_PATH = BASE_DIR / ".env"

DEFAULT_SHEET_ID = "1Ncb-35Ro4wS3RFRA_lgTMZESZvz2uvoGTPPKYCSkhi0"
DEFAULT_SHEET_GID = "353803842"
DEFAULT_SCAN_WEBHOOK = "https://prabhupadala01.app.n8n.cloud/webhook/scan-options"

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def build_export_url(sheet_id: str, gid: str) -> str:
    return f"https://docs.google.com/spreadsheets/d/{sheet_id}/export?format=csv&gid={gid}"


class Settings(BaseModel):
    sheet_id: str = DEFAULT_SHEET_ID
    sheet_gid: str = DEFAULT_SHEET_GID
    export_url: Optional[str] = Field(None, description="Overrides the URL built from sheet_id/sheet_gid")
    refresh_interval_s: float = Field(30.0, gt=0)
    request_timeout_s: float = Field(15.0, gt=0)
    scan_trigger_url: str = DEFAULT_SCAN_WEBHOOK
    scan_status_url: str = DEFAULT_SCAN_WEBHOOK + "-status"
    scan_poll_interval_ms: int = Field(2000, ge=0)
    scan_max_attempts: PositiveInt = 1800
    scan_refresh_every: PositiveInt = 2
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {v}")
        return level

    @property
    def sheet_url(self) -> str:
        return self.export_url or build_export_url(self.sheet_id, self.sheet_gid)


def _env_float(key: str) -> Optional[float]:
    try:
        return float(os.environ[key])
    except (KeyError, ValueError):
        return None


def _env_int(key: str) -> Optional[int]:
    try:
        return int(os.environ[key])
    except (KeyError, ValueError):
        return None


def _env_str(key: str) -> Optional[str]:
    val = os.getenv(key, "").strip()
    return val or None


# field -> (env var, reader); unreadable values fall through to the yaml/default layer
ENV_VARS: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "sheet_id": ("SHEET_ID", _env_str),
    "sheet_gid": ("SHEET_GID", _env_str),
    "export_url": ("SHEET_EXPORT_URL", _env_str),
    "refresh_interval_s": ("REFRESH_INTERVAL_S", _env_float),
    "request_timeout_s": ("REQUEST_TIMEOUT_S", _env_float),
    "scan_trigger_url": ("SCAN_TRIGGER_URL", _env_str),
    "scan_status_url": ("SCAN_STATUS_URL", _env_str),
    "scan_poll_interval_ms": ("SCAN_POLL_INTERVAL_MS", _env_int),
    "scan_max_attempts": ("SCAN_MAX_ATTEMPTS", _env_int),
    "scan_refresh_every": ("SCAN_REFRESH_EVERY", _env_int),
    "log_level": ("LOG_LEVEL", _env_str),
}


def load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r") as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        logger.warning("Ignoring %s: top level is not a mapping", path)
        return {}
    return cfg


def load_settings(config_path: Optional[Path] = None, env_path: Optional[Path] = None) -> Settings:
    """Build Settings from defaults, config.yaml and the environment (in that order)."""
    load_dotenv(env_path or ENV_PATH)

    values = {k: v for k, v in load_yaml(config_path or CONFIG_PATH).items() if k in Settings.model_fields}
    for field_name, (env_key, reader) in ENV_VARS.items():
        val = reader(env_key)
        if val is not None:
            values[field_name] = val
    return Settings(**values)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # aiohttp access/client chatter is rarely useful at INFO
    logging.getLogger("aiohttp").setLevel(max(logging.getLevelName(level), logging.WARNING))
