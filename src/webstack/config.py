"""
webstack · Configuration system.

Loads configuration from:
  1. Defaults (defined here)
  2. /etc/webstack/config.yaml (overrides defaults)
  3. Environment variables WEBSTACK_* (overrides everything)

The metadata directory is created explicitly via ensure_directory_structure(),
never as a side effect of importing a module.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from webstack.core.errors import ConfigError
from webstack.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("/etc/webstack/config.yaml")
ENV_PREFIX = "WEBSTACK_"

# ============================================================================
# Konfigurationsmodelle
# ============================================================================


class CronConfig(BaseModel):
    """Cron-Verwaltung: Pfade, externe Programme, Limits."""

    # Ein JSON-Datensatz pro Job (job-<id>.json)
    metadata_dir: Path = Path("/etc/webstack/cron")
    # Live-Crontab; wird nur gelesen, installiert wird über crontab_command
    crontab_file: Path = Path("/var/spool/cron/crontabs/root")
    crontab_command: str = "crontab"
    crontab_user: str = ""  # leer = Crontab des aufrufenden Benutzers

    # Präfix der Marker-Kommentare und Erkennungswort für eigene Befehle
    app_name: str = "webstack"
    timer_prefix: str = "webstack"
    # Bekannte, automatisch erzeugte Befehle ohne Marker
    auto_patterns: list[str] = Field(default_factory=lambda: ["webstack-backup-cleanup"])

    systemctl: str = "systemctl"
    daemon_unit: str = "cron"  # RHEL/Fedora: "crond"

    # Eigenes Cron-Log vor dem allgemeinen Syslog
    log_files: list[Path] = Field(
        default_factory=lambda: [Path("/var/log/cron"), Path("/var/log/syslog")],
    )
    log_window_bytes: int = Field(default=1024 * 1024, ge=4096)

    run_timeout_seconds: float = Field(default=3600.0, gt=0)
    require_root: bool = True


class LoggingConfig(BaseModel):
    """Logging-Konfiguration."""

    level: str = "WARNING"
    json_logs: bool = False
    console: bool = True
    log_dir: Path | None = None


class WebstackConfig(BaseModel):
    """Complete webstack configuration (cron subsystem)."""

    version: str = "0.4.0"
    cron: CronConfig = Field(default_factory=CronConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def lock_file(self) -> Path:
        """Lock-Datei für den Single-Writer-Abschnitt."""
        return self.cron.metadata_dir / ".lock"


# ============================================================================
# Config-Laden
# ============================================================================


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Wendet WEBSTACK_* Umgebungsvariablen an.

    Konvention: WEBSTACK_SECTION_KEY → data["section"]["key"]
    Beispiel: WEBSTACK_CRON_RUN_TIMEOUT_SECONDS → data["cron"]["run_timeout_seconds"]
    """
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        parts = key[len(ENV_PREFIX):].lower().split("_", 1)
        if len(parts) == 2:
            section, leaf_key = parts
            node = data.setdefault(section, {})
            if isinstance(node, dict):
                node[leaf_key] = value
        elif parts[0]:
            data[parts[0]] = value
    return data


def load_config(config_path: Path | None = None) -> WebstackConfig:
    """Lädt die Konfiguration.

    Reihenfolge (spätere überschreiben frühere):
      1. Defaults (in den Pydantic-Modellen)
      2. config.yaml (wenn vorhanden)
      3. WEBSTACK_* Umgebungsvariablen

    Args:
        config_path: Expliziter Pfad zur config.yaml. Wenn None: /etc/webstack/config.yaml

    Returns:
        Vollständig validierte WebstackConfig.

    Raises:
        ConfigError: Werte aus YAML oder Umgebung passen nicht zum Schema.
    """
    data: dict[str, Any] = {}

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            if isinstance(file_data, dict):
                data = file_data
        except yaml.YAMLError as exc:
            log.warning("config_yaml_ignored", path=str(config_path), error=str(exc))

    data = _apply_env_overrides(data)

    try:
        return WebstackConfig(**data)
    except PydanticValidationError as exc:
        first = exc.errors(include_url=False)[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ConfigError(
            f"invalid configuration ({config_path}): {field}: {first['msg']}",
            details={"path": str(config_path), "errors": exc.errors(include_url=False)},
        ) from exc


def ensure_directory_structure(config: WebstackConfig) -> list[str]:
    """Erstellt das Metadaten-Verzeichnis, falls es fehlt.

    Idempotent. Returns:
        Liste der neu erstellten Pfade (für Logging).
    """
    created: list[str] = []
    metadata_dir = config.cron.metadata_dir
    if not metadata_dir.exists():
        metadata_dir.mkdir(parents=True, exist_ok=True)
        created.append(str(metadata_dir))
    return created
