from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

# Load environment variables from .env file
load_dotenv()

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [parent / "config/config.yaml" for parent in _HERE.parents[:3]]

DEFAULT_CONVERTER_URL = "http://localhost:3000/pdf"


def _resolve_config_path() -> Path:
    override = os.environ.get("PA_CONFIG_PATH")
    if override:
        return Path(override)
    path = next((candidate for candidate in _CANDIDATE_CONFIG_PATHS if candidate.exists()), None)
    if path is None:  # pragma: no cover - fail fast in misconfigured environments
        raise FileNotFoundError("Program config.yaml could not be located; set PA_CONFIG_PATH or reinstall the package.")
    return path


@lru_cache(maxsize=1)
def load_program_config() -> DictConfig:
    config_path = _resolve_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Program config not found at {config_path}")
    config = OmegaConf.load(config_path)
    OmegaConf.set_readonly(config, True)
    return config  # type: ignore[return-value]


def get_program_container(resolve: bool = True) -> Dict[str, Any]:
    return OmegaConf.to_container(load_program_config(), resolve=resolve)  # type: ignore[return-value]


def make_program_config(overrides: Dict[str, Any]) -> DictConfig:
    """Return the program config with ``overrides`` merged over the defaults.

    The defaults are struct-locked, so an override naming an unknown key
    raises instead of silently adding it.
    """
    base = OmegaConf.create(get_program_container(resolve=False))
    OmegaConf.set_struct(base, True)
    merged = DictConfig(OmegaConf.merge(base, OmegaConf.create(overrides)))
    OmegaConf.set_readonly(merged, True)
    return merged


def _split_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _optional_float(raw: Optional[str]) -> Optional[float]:
    if raw is None or not raw.strip():
        return None
    return float(raw)


@dataclass(frozen=True)
class RuntimeSettings:
    """
    Deployment settings read from the environment.

    Attributes:
        data_path: Root for uploads, generated PDFs and export archives
        db_path: SQLite database file
        pdf_convert_url: HTML to PDF conversion endpoint
        pdf_convert_timeout: Seconds before the converter call is abandoned (None waits indefinitely)
        s3_bucket_name: Bucket receiving large export archives (empty disables S3)
        cors_origins: Origins allowed by the CORS middleware
        log_level: Root logging level
    """

    data_path: Path
    db_path: Path
    pdf_convert_url: str
    pdf_convert_timeout: Optional[float] = None
    s3_bucket_name: str = ""
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @property
    def upload_root(self) -> Path:
        return self.data_path / "uploads"

    @property
    def generated_root(self) -> Path:
        return self.data_path / "generated"

    @property
    def export_root(self) -> Path:
        return self.data_path / "exports"

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        data_path = Path(os.environ.get("DATA_PATH", "data"))
        db_path = os.environ.get("DB_PATH")
        return cls(
            data_path=data_path,
            db_path=Path(db_path) if db_path else data_path / "nominations.db",
            pdf_convert_url=os.environ.get("PDF_CONVERT_URL", DEFAULT_CONVERTER_URL),
            pdf_convert_timeout=_optional_float(os.environ.get("PDF_CONVERT_TIMEOUT")),
            s3_bucket_name=os.environ.get("S3_BUCKET_NAME", ""),
            cors_origins=_split_origins(os.environ.get("CORS_ORIGINS", "*")) or ["*"],
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_runtime_settings() -> RuntimeSettings:
    return RuntimeSettings.from_env()
