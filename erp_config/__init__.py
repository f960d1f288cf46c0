"""
erp_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way services obtain incentive
    policies, scoring tables and the permission catalog.  No other
    component reads configuration files directly.

Architecture position:
    Configuration -- sits above erp_kernel and erp_engines, below
    erp_services and erp_modules.  Engines never import erp_config;
    ``erp_config.bridges`` translates config into engine inputs.

Failure modes:
    - ``FileNotFoundError`` -- the requested set does not exist.
    - ``ValueError`` / ``KeyError`` -- structural problems in the YAML.

Audit relevance:
    The first load of every set emits an ``ERP_CONFIG_TRACE`` log entry with
    config_id, version and checksum, tying each credited incentive back to
    the configuration that sized it.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from erp_config.loader import load_configuration
from erp_config.schema import ErpConfiguration

_logger = logging.getLogger("erp_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    config_dir: Path | None = None,
    set_name: str = "default",
) -> ErpConfiguration:
    """Return the named configuration set, loading it on first use.

    Args:
        config_dir: Directory holding ``<set_name>.yaml``.  Defaults to
            erp_config/sets/.
        set_name: Configuration set file stem.

    Raises:
        FileNotFoundError: If the set file does not exist.
    """
    path = (config_dir or _DEFAULT_CONFIG_DIR) / f"{set_name}.yaml"
    return _load(path.resolve())


@lru_cache(maxsize=None)
def _load(path: Path) -> ErpConfiguration:
    if not path.is_file():
        raise FileNotFoundError(f"Configuration set not found: {path}")
    config = load_configuration(path)
    _logger.info(
        "ERP_CONFIG_TRACE",
        extra={
            "trace_type": "ERP_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "policy_count": len(config.incentive_policies),
            "scope_count": len(config.permissions.scopes),
        },
    )
    return config


def clear_config_cache() -> None:
    """Forget loaded sets so the next call re-reads YAML (tests only)."""
    _load.cache_clear()


__all__ = ["ErpConfiguration", "clear_config_cache", "get_active_config"]
