"""Column catalog: the ordered schema of a product table.

Catalog operations never mutate their input; each returns a new
``ColumnCatalog``.  Formula text is always passed through
``check_formula`` before it is stored.
"""

from __future__ import annotations

import re
import uuid
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

from invcols.formulas.references import references_field
from invcols.formulas.resolver import SYNTHETIC_FIELDS
from invcols.formulas.validator import check_formula

# Built-in fields that are numeric whatever their declared type.
BUILTIN_NUMERIC_FIELDS = frozenset({"price", "quantity"})

# Non-custom columns that may still be removed from a catalog.
_REMOVABLE_BUILTINS = frozenset({"totalValue"})


class CatalogError(Exception):
    """Invalid change to a column catalog."""


class DuplicateFieldError(CatalogError):
    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"A column with field {field!r} already exists.")


class ColumnInUseError(CatalogError):
    """A column cannot be removed while formula columns reference it.

    Attributes:
        field: The column being removed.
        dependents: Fields of the formula columns that reference it.
    """

    def __init__(self, field: str, dependents: list[str]) -> None:
        self.field = field
        self.dependents = dependents
        super().__init__(
            f"Column {field!r} is used by formula column(s): {', '.join(dependents)}"
        )


# ────────────────────────────────────────────────────────────────
# Models
# ────────────────────────────────────────────────────────────────


class ColumnType(str, Enum):
    text = "text"
    number = "number"
    currency = "currency"
    date = "date"
    image = "image"
    formula = "formula"


class ColumnDefinition(BaseModel):
    """One column of the product table.

    ``formula`` is set exactly when ``type`` is ``formula``.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    field: str
    label: str
    visible: bool = True
    is_custom: bool = Field(default=False, alias="isCustom")
    type: ColumnType = ColumnType.text
    formula: str | None = None

    @model_validator(mode="after")
    def _formula_matches_type(self) -> ColumnDefinition:
        has_formula = bool(self.formula and self.formula.strip())
        if self.type == ColumnType.formula and not has_formula:
            raise ValueError(f"Formula column {self.field!r} has no formula")
        if self.type != ColumnType.formula and self.formula is not None:
            raise ValueError(f"Column {self.field!r} is not a formula column but has a formula")
        return self


class ColumnCatalog(BaseModel):
    """Ordered column definitions with unique field names.

    Field names are unique ignoring case, since formulas reference them
    case-insensitively.
    """

    columns: list[ColumnDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_fields(self) -> ColumnCatalog:
        seen: dict[str, str] = {}
        for col in self.columns:
            key = col.field.lower()
            if key in seen:
                raise ValueError(f"Duplicate column field: {col.field!r} (clashes with {seen[key]!r})")
            seen[key] = col.field
        return self

    def has_field(self, field: str) -> bool:
        """True if a column's field equals *field* ignoring case."""
        key = field.lower()
        return any(col.field.lower() == key for col in self.columns)

    def get(self, column_id: str) -> ColumnDefinition:
        """Return the column with *column_id*.

        Raises:
            CatalogError: If there is no such column.
        """
        for col in self.columns:
            if col.id == column_id:
                return col
        raise CatalogError(f"Unknown column: {column_id!r}")

    def by_field(self, field: str) -> ColumnDefinition | None:
        for col in self.columns:
            if col.field == field:
                return col
        return None


def default_catalog() -> ColumnCatalog:
    """Return the built-in product table columns."""
    return ColumnCatalog(columns=[
        ColumnDefinition(id="image", field="image", label="Image", type=ColumnType.image),
        ColumnDefinition(id="productId", field="productId", label="Product ID"),
        ColumnDefinition(id="name", field="name", label="Name"),
        ColumnDefinition(id="price", field="price", label="Price", type=ColumnType.currency),
        ColumnDefinition(id="quantity", field="quantity", label="Quantity", type=ColumnType.number),
        ColumnDefinition(id="totalValue", field="totalValue", label="Total Value", type=ColumnType.currency),
        ColumnDefinition(id="actions", field="actions", label="Actions"),
    ])


# ────────────────────────────────────────────────────────────────
# Numeric membership
# ────────────────────────────────────────────────────────────────


def is_numeric_column(col: ColumnDefinition) -> bool:
    """True for number/currency columns and the built-in price/quantity."""
    if col.type == ColumnType.formula:
        return False
    if col.field in BUILTIN_NUMERIC_FIELDS:
        return True
    return col.type in (ColumnType.number, ColumnType.currency)


def numeric_fields(catalog: ColumnCatalog) -> list[str]:
    """Fields a formula may reference, in catalog order.

    Recompute this whenever the catalog changes: retyping a column moves
    it in or out of the list, which changes how existing formulas resolve.
    """
    return [
        c.field for c in catalog.columns
        if c.field not in SYNTHETIC_FIELDS and is_numeric_column(c)
    ]


def non_numeric_fields(catalog: ColumnCatalog) -> list[str]:
    """Fields a formula must not reference (formula columns included)."""
    return [
        c.field for c in catalog.columns
        if c.field not in SYNTHETIC_FIELDS and not is_numeric_column(c)
    ]


def formula_columns(catalog: ColumnCatalog) -> list[ColumnDefinition]:
    return [c for c in catalog.columns if c.type == ColumnType.formula]


def dependents_of(catalog: ColumnCatalog, field: str) -> list[str]:
    """Return the formula columns whose text references *field*."""
    return [
        c.field for c in formula_columns(catalog)
        if c.field != field and references_field(c.formula or "", field)
    ]


# ────────────────────────────────────────────────────────────────
# Edits
# ────────────────────────────────────────────────────────────────

_WS_RE = re.compile(r"\s+")
_FIELD_STRIP_RE = re.compile(r"[^a-z0-9_]")


def field_name_from_label(label: str) -> str:
    """Derive a field name: ``"Unit Cost ($)"`` -> ``"unit_cost_"``."""
    name = _WS_RE.sub("_", label.strip().lower())
    return _FIELD_STRIP_RE.sub("", name)


def add_column(
    catalog: ColumnCatalog,
    label: str,
    column_type: ColumnType | str = ColumnType.text,
    formula: str | None = None,
) -> ColumnCatalog:
    """Append a custom column derived from *label*.

    Args:
        catalog: Current catalog.
        label: Display label; the field name is derived from it.
        column_type: Declared type of the new column.
        formula: Formula text, required when *column_type* is ``formula``.

    Returns:
        A new catalog with the column appended.

    Raises:
        CatalogError: The label is empty or yields an empty field name.
        DuplicateFieldError: The derived field already exists.
        FormulaValidationError: The formula is empty or uses a non-numeric column.
    """
    column_type = ColumnType(column_type)
    label = label.strip()
    if not label:
        raise CatalogError("Column label is required.")
    field = field_name_from_label(label)
    if not field:
        raise CatalogError(f"Label {label!r} does not yield a usable field name.")
    if catalog.has_field(field):
        raise DuplicateFieldError(field)

    stored_formula = None
    if column_type == ColumnType.formula:
        stored_formula = check_formula(formula or "", catalog)

    column = ColumnDefinition(
        id=f"custom-{uuid.uuid4().hex[:12]}",
        field=field,
        label=label,
        visible=True,
        is_custom=True,
        type=column_type,
        formula=stored_formula,
    )
    return ColumnCatalog(columns=[*catalog.columns, column])


def update_formula(catalog: ColumnCatalog, column_id: str, text: str) -> ColumnCatalog:
    """Replace the formula of one formula column after validating it."""
    return update_formulas(catalog, {column_id: text})


def update_formulas(catalog: ColumnCatalog, drafts: Mapping[str, str]) -> ColumnCatalog:
    """Validate every draft, then store them all; nothing is stored on failure.

    Args:
        catalog: Current catalog.
        drafts: Column id -> raw formula text.

    Raises:
        CatalogError: A draft targets a missing or non-formula column.
        FormulaValidationError: A draft fails validation.
    """
    checked: dict[str, str] = {}
    for column_id, text in drafts.items():
        col = catalog.get(column_id)
        if col.type != ColumnType.formula:
            raise CatalogError(f"Column {col.field!r} is not a formula column.")
        # A formula column's own field is non-numeric, so self-reference fails here.
        checked[column_id] = check_formula(text, catalog)

    return ColumnCatalog(columns=[
        c.model_copy(update={"formula": checked[c.id]}) if c.id in checked else c
        for c in catalog.columns
    ])


def remove_column(catalog: ColumnCatalog, column_id: str) -> ColumnCatalog:
    """Remove a custom column (or ``totalValue``).

    Raises:
        CatalogError: The column is built-in and cannot be removed.
        ColumnInUseError: A formula column still references it.
    """
    col = catalog.get(column_id)
    if not col.is_custom and col.field not in _REMOVABLE_BUILTINS:
        raise CatalogError(f"Built-in column {col.field!r} cannot be removed.")
    dependents = dependents_of(catalog, col.field)
    if dependents:
        raise ColumnInUseError(col.field, dependents)
    return ColumnCatalog(columns=[c for c in catalog.columns if c.id != column_id])


def toggle_visibility(catalog: ColumnCatalog, column_id: str) -> ColumnCatalog:
    col = catalog.get(column_id)
    return ColumnCatalog(columns=[
        c.model_copy(update={"visible": not c.visible}) if c.id == col.id else c
        for c in catalog.columns
    ])


# ────────────────────────────────────────────────────────────────
# YAML persistence
# ────────────────────────────────────────────────────────────────


def catalog_from_dict(data: Any) -> ColumnCatalog:
    """Build a catalog from parsed YAML/JSON (a list or ``{"columns": [...]}``)."""
    if isinstance(data, list):
        data = {"columns": data}
    return ColumnCatalog.model_validate(data or {})


def load_catalog(path: Path) -> ColumnCatalog:
    """Load a catalog from YAML; a missing file gives ``default_catalog()``."""
    if not path.exists():
        return default_catalog()
    return catalog_from_dict(yaml.safe_load(path.read_text()))


def save_catalog(catalog: ColumnCatalog, path: Path) -> None:
    data = catalog.model_dump(mode="json", by_alias=True, exclude_none=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False))
