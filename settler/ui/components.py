"""
components.py - reusable Streamlit components / forms / displays

This module contains pure-UI helpers used by the dashboard:
 - display_expense_form(on_submit)
 - display_expense_list / display_remove_expense
 - display_summary (balances, chart and settlement transfers)
 - display_csv_import / display_sessions

The expense form enforces validation rules before anything reaches the ledger:
 - amount > 0
 - payer is required
 - at least one participant (comma separated handles, duplicates allowed)
"""

import datetime
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import altair as alt
import pandas as pd
import streamlit as st

from settler.csv_io import CSVImportError, expenses_frame, export_csv, export_xlsx, parse_csv
from settler.models import Transaction
from settler.sessions import Session


@dataclass
class ExpenseInput:
    """Lightweight container passed to the on_submit callback."""
    payer: str
    participants: List[str]
    amount: float


def parse_handles(text: str) -> List[str]:
    """Split "alice, @bob carol" into handles; empty items are dropped."""
    return [p for p in text.replace(",", " ").split() if p]


def display_expense_form(on_submit: Callable[[ExpenseInput], int]):
    """
    Display the 'Add Expense' form.

    on_submit receives the validated ExpenseInput and returns the new expense id.
    """
    st.header("Add Expense")
    with st.form(key="expense_form", clear_on_submit=True):
        payer = st.text_input("Who paid?", placeholder="@alice")
        participants_raw = st.text_input("Who participated?", placeholder="@alice @bob @carol")
        amount = st.number_input("Amount", min_value=0.0, format="%.2f")
        submit_button = st.form_submit_button("Add Expense")

    if submit_button:
        participants = parse_handles(participants_raw)
        if amount <= 0:
            st.error("Amount must be greater than 0.")
            return
        if not payer.strip():
            st.error("Payer name is required.")
            return
        if not participants:
            st.error("At least one participant is required.")
            return
        expense_id = on_submit(ExpenseInput(payer=payer.strip(), participants=participants, amount=round(amount, 2)))
        st.success(f"Ok, so {payer.strip()} paid {amount:.2f} for {', '.join(participants)} (expense #{expense_id}).")


def display_expense_list(expenses: List[Transaction], ids: List[int]):
    """
    Render expenses as a table and offer CSV / XLSX downloads.
    The CSV download can be uploaded again through the import view.
    """
    st.header("Current list of expenses")
    if not expenses:
        st.write("No expenses yet. Use 'Add Expense' to add a new one.")
        return

    df = expenses_frame(expenses, ids)
    st.dataframe(df.style.format({"amount": "{:.2f}"}), use_container_width=True, hide_index=True)
    st.markdown(f"**Total: {df['amount'].sum():.2f}**")

    col1, col2 = st.columns(2)
    with col1:
        st.download_button(
            label="Download as CSV",
            data=export_csv(expenses),
            file_name="expenses.csv",
            mime="text/csv",
        )
    with col2:
        st.download_button(
            label="Download as XLSX",
            data=export_xlsx(expenses, ids),
            file_name="expenses.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )


def display_remove_expense(expenses: List[Transaction], ids: List[int], on_remove: Callable[[int], bool]):
    if not expenses:
        return
    st.markdown("---")
    options = {f"#{i} {e.payer} paid {e.amount:.2f} for {', '.join(e.participants)}": i for e, i in zip(expenses, ids)}
    sel_label = st.selectbox("Select the expense to remove", options=list(options.keys()))
    if st.button("Remove expense"):
        expense_id = options[sel_label]
        if on_remove(expense_id):
            st.success(f"Ok, expense {expense_id} removed.")
            st.rerun()
        else:
            # someone else removed it in the meantime
            st.info(f"Expense {expense_id} was already removed.")


def balances_chart(balances: Dict[str, float]) -> alt.Chart:
    df = pd.DataFrame(
        [{"participant": p, "balance": round(b, 2)} for p, b in sorted(balances.items())],
        columns=["participant", "balance"],
    )
    return alt.Chart(df).mark_bar().encode(
        x=alt.X("participant:N", title="Participant", sort=None),
        y=alt.Y("balance:Q", title="Balance"),
        color=alt.condition(alt.datum.balance >= 0, alt.value("#2ca02c"), alt.value("#d62728")),
        tooltip=[
            alt.Tooltip("participant:N", title="Participant"),
            alt.Tooltip("balance:Q", title="Balance", format=".2f"),
        ],
    ).properties(width="container", height=300)


def display_summary(balances: Dict[str, float], transfers: List[Transaction], on_settle: Callable[[], None]):
    """
    Show balances and the suggested transfers, with a button that settles and
    clears the conversation's expenses.
    """
    st.header("Summary")
    if not transfers:
        st.write("Nothing to settle. Use 'Add Expense' to add a new expense.")
        return

    st.subheader("Current participant balances")
    for participant, balance in sorted(balances.items()):
        st.write(f" - {participant}: {balance:.2f}")
    st.altair_chart(balances_chart(balances), use_container_width=True)

    st.subheader("Suggestions for debt settlement transactions")
    for t in transfers:
        st.write(f" - {t.payer} must pay {t.amount:.2f} to {t.participants[0]}")

    st.markdown("---")
    confirm = st.checkbox("I confirm the debts above were paid")
    if st.button("Settle and clear expenses") and confirm:
        on_settle()
        st.success("Ok, the list of expenses has been cleared.")
        st.rerun()


def display_csv_import(has_expenses: bool, on_import: Callable[[List[Transaction]], int]):
    """Upload a CSV (payer,participants;...,amount) that replaces the current expenses."""
    st.header("Import expenses")
    st.caption("One expense per row: payer,participant1;participant2,amount")
    uploaded = st.file_uploader("CSV file", type=["csv"])
    if uploaded is None:
        return
    try:
        expenses = parse_csv(uploaded.getvalue().decode("utf-8"))
    except (CSVImportError, UnicodeDecodeError) as exc:
        st.error(f"Invalid import file: {exc}")
        return
    st.write(f"{len(expenses)} expenses found in the file.")
    confirmed = True
    if has_expenses:
        st.warning("Importing replaces the current list of expenses.")
        confirmed = st.checkbox("Replace the current expenses")
    if st.button("Import") and confirmed:
        count = on_import(expenses)
        st.success(f"{count} expenses imported.")


def _format_expiry(ts: float) -> str:
    return datetime.datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")


def display_sessions(
    sessions: List[Session],
    on_sweep: Callable[[], List],
    on_save: Callable[[], bool],
    storage_message: Optional[str] = None,
):
    """Admin view of the live conversations."""
    st.header("Conversations")
    if storage_message:
        st.caption(storage_message)
    rows = [
        {"conversation": str(s.id), "expenses": len(s.ledger), "expires": _format_expiry(s.expire_at)}
        for s in sessions
    ]
    if rows:
        st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)
    else:
        st.write("No live conversations.")

    col1, col2 = st.columns(2)
    with col1:
        if st.button("Clean expired now"):
            expired = on_sweep()
            st.success(f"Cleaned {len(expired)} expired conversations.")
    with col2:
        if st.button("Save snapshot now"):
            if on_save():
                st.success("Snapshot saved.")
            else:
                st.error("Failed to save snapshot. Check the server logs for details.")
