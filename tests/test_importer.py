from __future__ import annotations

import json
from decimal import Decimal
from io import BytesIO

import pytest
import xlwt
from openpyxl import Workbook

from stockroom import crud, importer
from stockroom.errors import ValidationError
from stockroom.models import Category, Product, Supplier, Warehouse

FRENCH_CSV = (
    "\ufeffRéférence,Nom,Prix,Coût,Niveau_min,Unité\n"
    'VIS-01,Vis à bois,"0,15","0,05",100,boîte\n'
    "\n"
    "CLOU-02,Clous,0.10,,50,\n"
)


def _xls_bytes(rows: list[list]) -> bytes:
    book = xlwt.Workbook()
    sheet = book.add_sheet("Produits")
    for row_index, row in enumerate(rows):
        for col_index, value in enumerate(row):
            sheet.write(row_index, col_index, value)
    buffer = BytesIO()
    book.save(buffer)
    return buffer.getvalue()


def _xlsx_bytes(rows: list[list]) -> bytes:
    book = Workbook()
    sheet = book.active
    for row in rows:
        sheet.append(row)
    buffer = BytesIO()
    book.save(buffer)
    return buffer.getvalue()


def test_parse_csv_skips_blank_lines_and_strips_bom() -> None:
    rows = importer.parse_upload("produits.csv", FRENCH_CSV.encode("utf-8"))

    assert len(rows) == 2
    assert rows[0]["Référence"] == "VIS-01"


def test_normalize_row_maps_french_aliases() -> None:
    rows = importer.parse_csv(FRENCH_CSV)

    first = importer.normalize_row("products", rows[0])
    assert first == {
        "sku": "VIS-01",
        "name": "Vis à bois",
        "unit_price": Decimal("0.15"),
        "cost_price": Decimal("0.05"),
        "reorder_level": 100,
        "unit_of_measure": "boîte",
    }
    second = importer.normalize_row("products", rows[1])
    assert second["cost_price"] == Decimal("0")
    assert "unit_of_measure" not in second


def test_normalize_row_rejects_bad_numbers() -> None:
    with pytest.raises(ValueError):
        importer.normalize_row("warehouses", {"nom": "Depot", "capacite": "beaucoup"})


def test_parse_xls_reads_first_sheet() -> None:
    data = _xls_bytes(
        [
            ["SKU", "Name", "Price", "Min"],
            ["XLS-1", "Spanner", 12.5, 3.0],
            ["", "", "", ""],
        ]
    )

    rows = importer.parse_upload("stock.xls", data)

    assert rows == [{"SKU": "XLS-1", "Name": "Spanner", "Price": "12.5", "Min": "3"}]


def test_parse_xlsx_reads_first_sheet() -> None:
    data = _xlsx_bytes([["nom", "emplacement", "capacite"], ["Depot Nord", "Lille", 250]])

    rows = importer.parse_upload("entrepots.xlsx", data)

    assert rows == [{"nom": "Depot Nord", "emplacement": "Lille", "capacite": "250"}]


def test_parse_upload_rejects_garbage() -> None:
    with pytest.raises(ValidationError):
        importer.parse_upload("stock.csv", b"")
    with pytest.raises(ValidationError):
        importer.parse_upload("stock.xls", b"not a workbook")
    with pytest.raises(ValidationError):
        importer.parse_upload("stock.json", b"{not json")
    with pytest.raises(ValidationError):
        importer.parse_json_payload({"unexpected": True})


def test_parse_json_payload_accepts_wrapped_lists() -> None:
    rows = [{"name": "A"}, "junk", {"name": "B"}]
    assert importer.parse_json_payload(rows) == [{"name": "A"}, {"name": "B"}]
    assert importer.parse_json_payload({"rows": rows}) == [{"name": "A"}, {"name": "B"}]
    data = json.dumps({"items": [{"name": "C"}]}).encode()
    assert importer.parse_upload("x.json", data) == [{"name": "C"}]


async def test_import_products_reports_row_errors(session) -> None:
    rows = importer.parse_csv(FRENCH_CSV) + [
        {"sku": "NONAME-1"},
        {"sku": "VIS-01", "name": "Duplicate"},
        {"sku": "BAD-1", "name": "Bad price", "prix": "cher"},
    ]

    result = await importer.import_rows(session, "products", rows)

    assert result.entity == "products"
    assert result.success == 2
    assert result.failed == 3
    assert result.errors[0].startswith("Row 3: name")
    assert result.errors[1] == "Row 4: Product with sku=VIS-01 already exists"
    assert result.errors[2].startswith("Row 5: unit_price")
    products = await crud.list_entities(session, Product)
    assert sorted(product.sku for product in products) == ["CLOU-02", "VIS-01"]


async def test_import_caps_reported_errors(session) -> None:
    rows = [{"description": f"row {index}"} for index in range(15)]

    result = await importer.import_rows(session, "categories", rows)

    assert result.failed == 15
    assert len(result.errors) == importer.MAX_REPORTED_ERRORS
    assert await crud.list_entities(session, Category) == []


async def test_import_suppliers_and_warehouses(session) -> None:
    suppliers = await importer.import_rows(
        session,
        "suppliers",
        [{"Nom": "Fournil", "Contact": "Jeanne", "Téléphone": "0102030405", "Adresse": "Paris"}],
    )
    warehouses = await importer.import_rows(
        session,
        "warehouses",
        importer.parse_upload(
            "entrepots.xlsx", _xlsx_bytes([["Nom", "Capacité"], ["Depot Sud", 80]])
        ),
    )

    assert suppliers.success == 1
    assert warehouses.success == 1
    (supplier,) = await crud.list_entities(session, Supplier)
    assert (supplier.contact_name, supplier.phone, supplier.address) == ("Jeanne", "0102030405", "Paris")
    (warehouse,) = await crud.list_entities(session, Warehouse)
    assert warehouse.capacity == 80


async def test_import_rejects_unknown_entity(session) -> None:
    with pytest.raises(ValidationError):
        await importer.import_rows(session, "stock-levels", [])


async def test_import_reports_overflowing_numbers_per_row(session) -> None:
    rows = [
        {"name": "A", "capacity": "5"},
        {"name": "B", "capacity": "1e400"},
        {"name": "C"},
        {"name": "D", "capacity": "inf"},
    ]

    result = await importer.import_rows(session, "warehouses", rows)

    assert result.success == 2
    assert result.failed == 2
    assert result.errors[0] == "Row 2: capacity: integer out of range '1e400'"
    assert result.errors[1] == "Row 4: capacity: invalid integer 'inf'"
    warehouses = await crud.list_entities(session, Warehouse)
    assert sorted(warehouse.name for warehouse in warehouses) == ["A", "C"]


async def test_import_reports_unbounded_prices_per_row(session) -> None:
    rows = [
        {"sku": "P-1", "name": "Huge", "unit_price": "1e400"},
        {"sku": "P-2", "name": "Nan", "unit_price": "NaN"},
        {"sku": "P-3", "name": "Fine", "unit_price": "2.005"},
    ]

    result = await importer.import_rows(session, "products", rows)

    assert result.success == 1
    assert result.errors[0].startswith("Row 1: unit_price")
    assert result.errors[1] == "Row 2: unit_price: invalid number 'NaN'"
    (product,) = await crud.list_entities(session, Product)
    assert product.unit_price == Decimal("2.01")
