import json

import streamlit as st
import streamlit.components.v1 as components

from bank_link import LinkState
from config import load_settings
from context import build_context
from controller import EMPTY_MESSAGE, BudgetController
from dashboard import render_kpis, spend_vs_limit
from errors import ConfigurationError
from results import INFO, SUCCESS

# --- Configuration ---
st.set_page_config(page_title="Personal Budget Tracker", page_icon="💰")

PLAID_LINK_JS = "https://cdn.plaid.com/link/v2/stable/link-initialize.js"
REFRESH_SECONDS = 3


@st.cache_resource
def get_context():
    # One context per server process: store client, auth client, link client
    return build_context(load_settings())


def get_controller() -> BudgetController:
    if "controller" not in st.session_state:
        st.session_state.controller = BudgetController(get_context())
    return st.session_state.controller


def show_status(ctrl: BudgetController):
    if not ctrl.status.text:
        return
    if ctrl.status.kind == SUCCESS:
        st.success(ctrl.status.text)
    elif ctrl.status.kind == INFO:
        st.info(ctrl.status.text)
    else:
        st.error(ctrl.status.text)


try:
    controller = get_controller()
except ConfigurationError as e:
    st.error(f"Error initializing app: {e}. Please check your environment settings.")
    st.stop()

controller.start()

if not controller.auth_ready:
    st.markdown("### Loading application...")
    show_status(controller)
    st.stop()

# --- Main App ---
st.title("💰 Personal Budget Tracker")
st.caption(f"Your User ID: `{controller.user_id}`")
show_status(controller)

if controller.identity.current_user is not None:
    with st.sidebar:
        st.caption("Signed in" + (" anonymously" if controller.identity.current_user.is_anonymous else ""))
        if st.button("Sign out"):
            controller.sign_out()
            st.rerun()

if controller.scope is not None and not controller.live:
    if st.button("Retry loading categories"):
        controller.resubscribe()
        st.rerun()


@st.dialog("Add New Category")
def add_category_dialog():
    with st.form("add_category"):
        name = st.text_input("Category Name:", placeholder="e.g., Groceries")
        limit = st.text_input("Weekly Budget Limit ($):", placeholder="e.g., 100.00")
        col_a, col_b = st.columns(2)
        cancelled = col_a.form_submit_button("Cancel")
        submitted = col_b.form_submit_button("Add Category", type="primary")

    if cancelled:
        controller.close_add_modal()
        st.rerun()
    if submitted:
        controller.new_category_name = name
        controller.new_category_limit = limit
        outcome = controller.add_category()
        if outcome.ok:
            st.rerun()
        st.error(outcome.message)


header_col, button_col = st.columns([3, 1])
header_col.subheader("Your Categories")
if button_col.button("Add New Category", type="primary", use_container_width=True):
    controller.open_add_modal()
    add_category_dialog()


@st.fragment(run_every=REFRESH_SECONDS)
def category_cards():
    status_before = controller.status.current
    controller.refresh()
    if controller.status.current is not status_before:
        st.rerun()

    cards = controller.cards()
    if not cards:
        st.info(EMPTY_MESSAGE)
        return

    render_kpis(cards)

    for card in cards:
        with st.container(border=True):
            title_col, action_col = st.columns([3, 1])
            title_col.markdown(f"#### {card.name}")
            with action_col.popover("Update Limit"):
                new_limit = st.text_input(
                    f"New weekly limit for {card.id}",
                    value=f"{card.weekly_limit:.2f}",
                    key=f"limit_{card.id}",
                )
                if st.button("Save", key=f"save_{card.id}"):
                    controller.update_limit(card.id, new_limit)
                    st.rerun()

            st.markdown(
                f"Weekly Limit: **${card.weekly_limit:,.2f}**  \n"
                f"Current Spending: **${card.current_week_spending:,.2f}**"
            )
            st.progress(card.progress / 100)
            st.markdown(f"**:{card.tone}[Remaining: ${card.remaining:,.2f}]**")

    st.plotly_chart(spend_vs_limit(cards), use_container_width=True)


category_cards()


def plaid_link_widget(link_token: str):
    """Plaid Link runs in the browser; the resulting public token is pasted back below."""
    components.html(f"""
        <script src="{PLAID_LINK_JS}"></script>
        <div id="result" style="font-family: sans-serif; font-size: 14px;"></div>
        <script>
          const handler = Plaid.create({{
            token: {json.dumps(link_token)},
            onSuccess: (public_token, metadata) => {{
              document.getElementById("result").innerText = "Public token: " + public_token;
            }},
            onExit: (err, metadata) => {{ console.log("Plaid Link exit", err, metadata); }},
            onEvent: (eventName, metadata) => {{ console.log("Plaid Link event", eventName, metadata); }},
          }});
          handler.open();
        </script>
    """, height=520)


if controller.bank_link_enabled:
    st.divider()
    st.subheader("🏦 Bank Account")
    state = controller.link_state

    if state == LinkState.NO_TOKEN:
        st.caption("Could not prepare bank linking yet.")
        if st.button("Retry"):
            controller.request_link_token()
            st.rerun()
    elif state == LinkState.TOKEN_REQUESTED:
        st.caption("Preparing bank link...")
    elif state == LinkState.TOKEN_READY:
        if st.button("🔗 Connect a bank account"):
            controller.open_link()
            st.rerun()
    elif state == LinkState.LINK_OPENED:
        plaid_link_widget(controller.link_flow.link_token)
        public_token = st.text_input("Public Token (from Plaid Link)")
        col_a, col_b = st.columns(2)
        if col_a.button("Finish Linking", type="primary", use_container_width=True) and public_token:
            controller.complete_link(public_token)
            st.rerun()
        if col_b.button("Cancel", use_container_width=True):
            controller.exit_link()
            st.rerun()
    else:
        if state == LinkState.EXCHANGED:
            st.caption("Your bank account is linked.")
        if st.button("Link another account"):
            controller.restart_link()
            controller.request_link_token()
            st.rerun()

st.divider()
if st.button("Simulate Fetch & Categorize Transactions", use_container_width=True):
    controller.fetch_and_categorize()
    st.rerun()
st.caption("(This button currently only shows a message; backend integration is required for full functionality.)")
