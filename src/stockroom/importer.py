"""Bulk import of products, categories, suppliers and warehouses.

Uploads may be CSV, XLS, XLSX or JSON. Column headers are matched
case-insensitively against English and French aliases, so ``Nom``, ``prix``
and ``capacite`` land on ``name``, ``unit_price`` and ``capacity``. Every row
is validated and inserted on its own and committed immediately; a bad row is
reported and does not affect its neighbours.
"""
from __future__ import annotations

import csv
import json
import logging
from decimal import Decimal, InvalidOperation
from io import BytesIO, StringIO
from pathlib import Path
from typing import Any

import pydantic
import xlrd
from openpyxl import load_workbook
from sqlalchemy.ext.asyncio import AsyncSession

from . import crud, schemas
from .errors import StockroomError, ValidationError
from .models import Category, Product, Supplier, Warehouse

logger = logging.getLogger(__name__)

MAX_REPORTED_ERRORS = 10
# SQLite INTEGER is a signed 64-bit value.
MAX_INTEGER = 2**63 - 1


def _normalize_key(value: Any) -> str:
    if value is None:
        return ""
    text = str(value).strip().lower()
    if "\ufeff" in text:
        text = text.replace("\ufeff", "")
    return text


_FIELD_ALIASES: dict[str, dict[str, set[str]]] = {
    "products": {
        "sku": {"sku", "reference", "référence"},
        "name": {"name", "nom"},
        "description": {"description"},
        "unit_price": {"unit_price", "prix", "price"},
        "cost_price": {"cost_price", "cout", "coût", "cost"},
        "reorder_level": {"reorder_level", "niveau_min", "min"},
        "reorder_quantity": {"reorder_quantity", "quantite_commande", "quantité_commande"},
        "unit_of_measure": {"unit_of_measure", "unite", "unité", "unit"},
        "barcode": {"barcode", "code_barre", "code-barres"},
    },
    "categories": {
        "name": {"name", "nom"},
        "description": {"description"},
    },
    "suppliers": {
        "name": {"name", "nom"},
        "contact_name": {"contact_name", "contact"},
        "email": {"email", "courriel"},
        "phone": {"phone", "telephone", "téléphone"},
        "address": {"address", "adresse"},
    },
    "warehouses": {
        "name": {"name", "nom"},
        "location": {"location", "emplacement"},
        "capacity": {"capacity", "capacite", "capacité"},
    },
}

_FIELD_ALIASES_NORMALIZED: dict[str, dict[str, set[str]]] = {
    entity: {field: {_normalize_key(alias) for alias in aliases} for field, aliases in fields.items()}
    for entity, fields in _FIELD_ALIASES.items()
}

_DECIMAL_FIELDS = {"unit_price", "cost_price"}
_INTEGER_FIELDS = {"reorder_level", "reorder_quantity", "capacity"}

ENTITY_TARGETS: dict[str, tuple[type, type[pydantic.BaseModel]]] = {
    "products": (Product, schemas.ProductCreate),
    "categories": (Category, schemas.CategoryCreate),
    "suppliers": (Supplier, schemas.SupplierCreate),
    "warehouses": (Warehouse, schemas.WarehouseCreate),
}


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _rows_from_table(header: list[Any], body: list[list[Any]]) -> list[dict[str, Any]]:
    labels = [_cell_text(value) for value in header]
    if not any(labels):
        raise ValidationError("Missing header row")
    rows: list[dict[str, Any]] = []
    for values in body:
        record = {
            label: _cell_text(values[index]) if index < len(values) else ""
            for index, label in enumerate(labels)
            if label
        }
        if any(record.values()):
            rows.append(record)
    return rows


def parse_csv(text: str) -> list[dict[str, Any]]:
    reader = csv.DictReader(StringIO(text))
    if reader.fieldnames is None:
        raise ValidationError("Missing header row")
    rows: list[dict[str, Any]] = []
    for row in reader:
        if not row:
            continue
        if not any(str(value or "").strip() for value in row.values()):
            continue
        rows.append({key: value for key, value in row.items() if key is not None})
    return rows


def parse_xls(data: bytes) -> list[dict[str, Any]]:
    try:
        workbook = xlrd.open_workbook(file_contents=data)
    except Exception as exc:
        raise ValidationError("Invalid XLS file") from exc
    if workbook.nsheets == 0:
        raise ValidationError("Missing worksheet")
    sheet = workbook.sheet_by_index(0)
    if sheet.nrows == 0:
        raise ValidationError("Missing header row")
    header = sheet.row_values(0)
    body = [sheet.row_values(index) for index in range(1, sheet.nrows)]
    return _rows_from_table(header, body)


def parse_xlsx(data: bytes) -> list[dict[str, Any]]:
    try:
        workbook = load_workbook(filename=BytesIO(data), read_only=True, data_only=True)
    except Exception as exc:
        raise ValidationError("Invalid XLSX file") from exc
    try:
        sheet = workbook.worksheets[0] if workbook.worksheets else None
        if sheet is None:
            raise ValidationError("Missing worksheet")
        table = [list(row) for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()
    if not table:
        raise ValidationError("Missing header row")
    return _rows_from_table(table[0], table[1:])


def parse_json_payload(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        return [row for row in payload if isinstance(row, dict)]
    if isinstance(payload, dict):
        for key in ("items", "rows", "data"):
            items = payload.get(key)
            if isinstance(items, list):
                return [row for row in items if isinstance(row, dict)]
    raise ValidationError("Unsupported import payload")


def parse_upload(filename: str, data: bytes) -> list[dict[str, Any]]:
    """Turn an uploaded file into a list of raw rows keyed by their header labels."""

    if not data:
        raise ValidationError("Empty file")
    extension = Path(filename or "").suffix.lower()
    if extension == ".xls":
        return parse_xls(data)
    if extension == ".xlsx":
        return parse_xlsx(data)
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ValidationError("File must be UTF-8 encoded, XLS or XLSX") from exc
    if extension == ".json":
        try:
            return parse_json_payload(json.loads(text))
        except json.JSONDecodeError as exc:
            raise ValidationError("Invalid JSON file") from exc
    return parse_csv(text)


def _parse_decimal(field: str, value: Any, kind: str) -> Decimal:
    try:
        number = Decimal(str(value).replace(",", "."))
    except InvalidOperation as exc:
        raise ValueError(f"{field}: invalid {kind} {value!r}") from exc
    if not number.is_finite():
        raise ValueError(f"{field}: invalid {kind} {value!r}")
    return number


def _coerce(field: str, value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
    if field in _DECIMAL_FIELDS:
        if value in ("", None):
            return Decimal("0")
        return _parse_decimal(field, value, "number")
    if field in _INTEGER_FIELDS:
        if value in ("", None):
            return 0
        number = _parse_decimal(field, value, "integer")
        if abs(number) > MAX_INTEGER:
            raise ValueError(f"{field}: integer out of range {value!r}")
        return int(number)
    return "" if value is None else str(value)


def normalize_row(entity: str, raw: dict[str, Any]) -> dict[str, Any]:
    """Map aliased columns onto canonical field names, omitting absent fields."""

    aliases = _FIELD_ALIASES_NORMALIZED[entity]
    normalized = {_normalize_key(key): value for key, value in raw.items()}
    record: dict[str, Any] = {}
    for field, names in aliases.items():
        for alias in names:
            if alias in normalized:
                value = normalized[alias]
                if value is None or (isinstance(value, str) and not value.strip()):
                    if field in _DECIMAL_FIELDS or field in _INTEGER_FIELDS:
                        record[field] = _coerce(field, value)
                    break
                record[field] = _coerce(field, value)
                break
    return record


def _describe(exc: pydantic.ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


async def import_rows(
    session: AsyncSession, entity: str, rows: list[dict[str, Any]]
) -> schemas.ImportResult:
    if entity not in ENTITY_TARGETS:
        raise ValidationError(
            f"Unsupported import type: {entity}",
            details={"supported": sorted(ENTITY_TARGETS)},
        )
    model, create_schema = ENTITY_TARGETS[entity]
    success = 0
    errors: list[str] = []
    for index, raw in enumerate(rows, start=1):
        try:
            payload = create_schema.model_validate(normalize_row(entity, raw))
            await crud.create_entity(session, model, payload)
            await session.commit()
        except pydantic.ValidationError as exc:
            await session.rollback()
            errors.append(f"Row {index}: {_describe(exc)}")
        except (StockroomError, ValueError) as exc:
            await session.rollback()
            errors.append(f"Row {index}: {getattr(exc, 'message', str(exc))}")
        else:
            success += 1

    logger.info("Imported %s: %d succeeded, %d failed", entity, success, len(errors))
    return schemas.ImportResult(
        entity=entity,
        success=success,
        failed=len(errors),
        errors=errors[:MAX_REPORTED_ERRORS],
    )


__all__ = [
    "ENTITY_TARGETS",
    "MAX_REPORTED_ERRORS",
    "parse_csv",
    "parse_xls",
    "parse_xlsx",
    "parse_json_payload",
    "parse_upload",
    "normalize_row",
    "import_rows",
]
