"""
kapan_config -- single public entrypoint for plant configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_settings()``.  Stage prerequisites, delimited field
    positions, rates, rate bands, the carat department threshold, the
    single-packet return limit and box ranges are all configuration data;
    no engine or service hard-codes them.

Architecture position:
    Configuration -- YAML-driven settings.  Sits above ``kapan_kernel`` and
    ``kapan_engines`` (whose value types it builds) and below
    ``kapan_services``.  Engines MUST NEVER import from ``kapan_config``.

Failure modes:
    - ``FileNotFoundError`` -- settings file missing.
    - ``KeyError`` / ``ValueError`` -- schema or value errors.

Audit relevance:
    Every successful ``get_active_settings()`` call emits a
    ``KAPAN_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying every rate and threshold decision to the exact
    settings document that governed it.
"""

from __future__ import annotations

from pathlib import Path

from kapan_config.loader import load_settings
from kapan_config.schema import PlantSettings
from kapan_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
_DEFAULT_SET = "default.yaml"


def get_active_settings(path: Path | str | None = None) -> PlantSettings:
    """The ONLY public configuration entrypoint.

    Args:
        path: Settings file to load.  Defaults to
            ``kapan_config/sets/default.yaml``.

    Returns:
        Frozen ``PlantSettings``.

    Raises:
        FileNotFoundError: If the settings file does not exist.
        KeyError / ValueError: If the document fails validation.
    """
    settings_path = Path(path) if path is not None else _DEFAULT_CONFIG_DIR / _DEFAULT_SET
    if not settings_path.is_file():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    settings = load_settings(settings_path)

    _logger.info(
        "KAPAN_CONFIG_TRACE",
        extra={
            "trace_type": "KAPAN_CONFIG_TRACE",
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "source": str(settings_path),
            "layout_count": len(settings.layouts),
            "rate_table_count": len(settings.rate_tables),
            "box_range_count": len(settings.box_ranges),
        },
    )
    return settings


__all__ = ["PlantSettings", "get_active_settings"]
