"""
dashboard.py - Streamlit UI entrypoint and orchestration

This module wires the UI components (settler.ui.components) with the
runtime (settler.runtime). The main() function builds the sidebar, resolves
the selected conversation to its ledger and routes actions to components.

Design notes:
 - Keep the dashboard responsible only for UI orchestration and presentation.
 - All balance and settlement rules live in settler.ledger, session lifetime
   and snapshots in settler.sessions / settler.runtime.
 - The runtime is shared by every browser session of the process, like the
   conversations of a chat bot share one session store.
"""

import atexit
import logging

import streamlit as st

from settler.config import Settings, configure_logging
from settler.runtime import SettlerRuntime
from settler.ui import components

logger = logging.getLogger(__name__)


@st.cache_resource
def get_runtime() -> SettlerRuntime:
    """Create, restore and start the process-wide runtime once."""
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    runtime = SettlerRuntime(settings)
    runtime.start()
    atexit.register(runtime.stop)
    return runtime


def main():
    """
    Streamlit page: sidebar menu controls which view is shown.
    Actions:
      - Add Expense: form, recorded through ledger.add_expense
      - List Expenses: table, downloads and removal by id
      - Summary: balances and settle-up transfers, optional settle-and-clear
      - Import CSV: replace the conversation's expenses from a file
      - Conversations: live sessions, manual sweep and snapshot
    """
    st.title("Settler")
    runtime = get_runtime()
    backend_name, backend_msg = runtime.persistence.status()
    if backend_name == "google_sheets":
        st.sidebar.success(backend_msg)
    else:
        st.sidebar.warning(backend_msg)

    conversation_id = st.sidebar.text_input("Conversation", value=st.session_state.get("conversation", "default"))
    conversation_id = conversation_id.strip()
    if not conversation_id:
        st.info("Type a conversation name in the sidebar to start.")
        return
    st.session_state["conversation"] = conversation_id

    menu = [
        "Add Expense",
        "List Expenses",
        "Summary",
        "Import CSV",
        "Conversations",
    ]
    choice = st.sidebar.selectbox("Select an option", menu)

    if choice == "Conversations":
        components.display_sessions(
            runtime.store.sessions(),
            on_sweep=runtime.sweep,
            on_save=runtime.save_snapshot,
            storage_message=backend_msg,
        )
        return

    ledger = runtime.ledger_for(conversation_id)

    if choice == "Add Expense":
        def on_submit(exp_input: components.ExpenseInput) -> int:
            expense_id = ledger.add_expense(exp_input.payer, exp_input.participants, exp_input.amount)
            logger.info("Conversation %r: added expense %d", conversation_id, expense_id)
            return expense_id

        components.display_expense_form(on_submit)

    elif choice == "List Expenses":
        expenses, ids = ledger.list_expenses()
        components.display_expense_list(expenses, ids)
        components.display_remove_expense(expenses, ids, ledger.remove_expense)

    elif choice == "Summary":
        def on_settle():
            ledger.settle(clean=True)
            logger.info("Conversation %r: settled and cleared", conversation_id)

        balances, transfers = ledger.summary()
        components.display_summary(balances, transfers, on_settle)

    elif choice == "Import CSV":
        def on_import(expenses) -> int:
            count = ledger.replace_expenses(expenses)
            logger.info("Conversation %r: imported %d expenses", conversation_id, count)
            return count

        components.display_csv_import(len(ledger) > 0, on_import)


if __name__ == "__main__":
    main()
