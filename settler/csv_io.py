"""
csv_io.py - import/export of a conversation's expenses

CSV layout (no header), one expense per row:

    payer,participant1;participant2,12.50

The XLSX export is what the UI offers as a spreadsheet download.
"""

import math
from io import BytesIO, StringIO
from typing import List

import pandas as pd

from settler.models import Transaction

CSV_COLUMNS = ["payer", "participants", "amount"]


class CSVImportError(ValueError):
    """Raised when an uploaded CSV cannot be turned into expenses."""


def expenses_frame(transactions: List[Transaction], ids: List[int] = None) -> pd.DataFrame:
    rows = []
    for i, t in enumerate(transactions):
        row = {
            "payer": t.payer,
            "participants": ", ".join(t.participants),
            "amount": float(t.amount),
        }
        if ids is not None:
            row["id"] = ids[i]
        rows.append(row)
    columns = (["id"] if ids is not None else []) + CSV_COLUMNS
    return pd.DataFrame(rows, columns=columns)


def export_csv(transactions: List[Transaction]) -> str:
    df = pd.DataFrame(
        [[t.payer, ";".join(t.participants), f"{t.amount:.2f}"] for t in transactions],
        columns=CSV_COLUMNS,
    )
    return df.to_csv(index=False, header=False)


def parse_csv(text: str) -> List[Transaction]:
    """
    Parse CSV text into expenses. The whole file is rejected on the first bad
    row so that a partial import never reaches the ledger.
    """
    if not text or not text.strip():
        return []
    try:
        df = pd.read_csv(StringIO(text), header=None, dtype=str, keep_default_na=False, skip_blank_lines=True)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise CSVImportError(f"invalid CSV: {exc}") from exc
    if df.shape[1] != len(CSV_COLUMNS):
        raise CSVImportError(f"expected {len(CSV_COLUMNS)} columns per row, got {df.shape[1]}")
    # short rows come back as NaN even with keep_default_na=False
    df = df.fillna("")

    out: List[Transaction] = []
    for idx, (payer, raw_participants, raw_amount) in enumerate(df.itertuples(index=False, name=None), start=1):
        payer = payer.strip()
        participants = [p.strip() for p in raw_participants.split(";") if p.strip()]
        if not payer:
            raise CSVImportError(f"row {idx}: payer is empty")
        if not participants:
            raise CSVImportError(f"row {idx}: no participants")
        try:
            amount = float(raw_amount)
        except ValueError:
            raise CSVImportError(f"row {idx}: invalid amount {raw_amount!r}")
        if not math.isfinite(amount) or amount < 0:
            raise CSVImportError(f"row {idx}: amount must be a non-negative number, got {raw_amount!r}")
        out.append(Transaction(payer=payer, participants=participants, amount=amount))
    return out


def export_xlsx(transactions: List[Transaction], ids: List[int]) -> bytes:
    df = expenses_frame(transactions, ids)
    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="expenses")
    buffer.seek(0)
    return buffer.getvalue()
