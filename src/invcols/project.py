"""Project-level configuration and scaffolding."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "invcols.yaml"

DEFAULT_CONFIG = {
    "catalog_file": "columns.yaml",
    "no_value_placeholder": "-",
    "error_placeholder": "Error",
    "currency_symbol": "$",
    "decimal_places": 2,
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}

DEMO_CONFIG = """\
# invcols project configuration
catalog_file: columns.yaml
no_value_placeholder: "-"
error_placeholder: Error
currency_symbol: "$"
decimal_places: 2
# logging_fsync: false
"""

DEMO_PRODUCTS_CSV = """\
productId,name,price,quantity,discount,category
P-001,Widget A,120.00,100,10,electronics
P-002,Widget B,45.00,200,,electronics
P-003,Gadget C,75.50,150,5.5,home
P-004,Gadget D,30.00,,0,home
P-005,Tool E,200.00,50,20,industrial
"""


def load_project_config(project_dir: Path) -> dict[str, Any]:
    """Load project configuration from ``invcols.yaml``, with defaults.

    Args:
        project_dir: Root of the invcols project.

    Returns:
        Merged configuration dict.  Unknown keys are kept.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = project_dir / CONFIG_FILENAME
    if config_path.exists():
        user_config = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(user_config, dict):
            raise ValueError(f"{config_path} must contain a mapping")
        config.update(user_config)

    try:
        config["decimal_places"] = max(0, int(config["decimal_places"]))
    except (TypeError, ValueError):
        config["decimal_places"] = DEFAULT_CONFIG["decimal_places"]
    return config


def catalog_path(project_dir: Path, config: dict[str, Any] | None = None) -> Path:
    """Return the catalog file path for *project_dir*."""
    cfg = config if config is not None else load_project_config(project_dir)
    return project_dir / str(cfg.get("catalog_file") or DEFAULT_CONFIG["catalog_file"])


def scaffold_project(target_dir: Path) -> Path:
    """Create a new project with a config, a catalog and sample records.

    The catalog is the default product table plus a ``discount`` currency
    column, a ``category`` text column and a ``net_value`` formula column.

    Args:
        target_dir: Directory to create.

    Returns:
        The project directory.

    Raises:
        FileExistsError: If *target_dir* already holds a project config.
    """
    from invcols.catalog import ColumnType, add_column, default_catalog, save_catalog

    if (target_dir / CONFIG_FILENAME).exists():
        raise FileExistsError(f"Project already exists at {target_dir}")
    target_dir.mkdir(parents=True, exist_ok=True)
    (target_dir / CONFIG_FILENAME).write_text(DEMO_CONFIG)

    catalog = default_catalog()
    catalog = add_column(catalog, "Discount", ColumnType.currency)
    catalog = add_column(catalog, "Category", ColumnType.text)
    catalog = add_column(
        catalog, "Net Value", ColumnType.formula, "(price - discount) * quantity"
    )
    save_catalog(catalog, target_dir / DEFAULT_CONFIG["catalog_file"])
    (target_dir / "products.csv").write_text(DEMO_PRODUCTS_CSV)
    return target_dir
