import pytest
from openpyxl import load_workbook
from io import BytesIO

from settler.csv_io import CSVImportError, export_csv, export_xlsx, parse_csv
from settler.ledger import Ledger
from settler.models import Transaction


def test_export_csv_layout():
    text = export_csv([
        Transaction("@alice", ["@bob", "@carol"], 30.0),
        Transaction("@carol", ["@bob"], 20.456),
    ])
    assert text.splitlines() == ["@alice,@bob;@carol,30.00", "@carol,@bob,20.46"]


def test_parse_csv():
    expenses = parse_csv("@alice,@bob;@carol,30.00\n@carol, @bob ,20\n")
    assert expenses == [
        Transaction("@alice", ["@bob", "@carol"], 30.0),
        Transaction("@carol", ["@bob"], 20.0),
    ]


def test_export_then_import_into_ledger():
    source = Ledger()
    source.add_expense("Alice", ["Bob", "Carol"], 30.0)
    source.add_expense("Carol", ["Bob"], 20.0)
    target = Ledger()
    target.replace_expenses(parse_csv(export_csv(source.export_transactions())))
    assert target.list_balances() == pytest.approx(source.list_balances())


def test_parse_empty():
    assert parse_csv("") == []
    assert parse_csv("\n\n") == []


@pytest.mark.parametrize("text", [
    "alice,bob\n",
    "alice,bob,10,extra\n",
    "alice,bob,10\nalice,bob\n",
    "alice,bob,ten\n",
    "alice,bob,-5\n",
    "alice,;,5\n",
    ",bob,5\n",
])
def test_parse_rejects_bad_rows(text):
    with pytest.raises(CSVImportError):
        parse_csv(text)


def test_export_xlsx():
    data = export_xlsx([Transaction("Alice", ["Bob", "Carol"], 12.5)], [3])
    sheet = load_workbook(BytesIO(data))["expenses"]
    rows = list(sheet.iter_rows(values_only=True))
    assert rows == [("id", "payer", "participants", "amount"), (3, "Alice", "Bob, Carol", 12.5)]
