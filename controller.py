"""View state and user actions for the budget page.

The controller is UI-agnostic: ``app.py`` renders its state with Streamlit and
calls its methods from widgets, tests drive it directly.
"""

import weakref
from dataclasses import dataclass
from typing import Callable, List, Optional

from bank_link import BankLinkFlow, LinkState
from categories import Category, Scope
from context import AppContext
from errors import LinkError, StoreError, ValidationError
from identity import AuthUser, IdentityResolver
from logger import get_logger
from results import SUCCESS, Outcome, StatusMessage

logger = get_logger()

NOT_READY_MESSAGE = "Database not initialized or user not authenticated."
EMPTY_MESSAGE = 'No categories added yet. Click "Add New Category" to get started!'


def _weak(method):
    """Call a bound method without keeping its object alive."""
    ref = weakref.WeakMethod(method)

    def call(*args):
        target = ref()
        if target is not None:
            target(*args)

    return call


@dataclass(frozen=True)
class CategoryCard:
    """Everything needed to draw one category card."""

    id: str
    name: str
    weekly_limit: float
    current_week_spending: float
    remaining: float
    is_over_budget: bool
    progress: float

    @property
    def tone(self) -> str:
        return "red" if self.is_over_budget else "blue"

    @classmethod
    def from_category(cls, category: Category) -> "CategoryCard":
        return cls(
            id=category.id,
            name=category.name,
            weekly_limit=category.weekly_limit,
            current_week_spending=category.current_week_spending,
            remaining=category.remaining,
            is_over_budget=category.is_over_budget,
            progress=category.display_progress,
        )


class BudgetController:
    def __init__(self, context: AppContext, identity: Optional[IdentityResolver] = None):
        self.context = context
        self.identity = identity or context.new_identity_resolver()
        self.status = StatusMessage()

        self.categories: List[Category] = []
        self.show_add_modal = False
        self.new_category_name = ""
        self.new_category_limit = ""

        self.scope: Optional[Scope] = None
        self.link_flow: Optional[BankLinkFlow] = None
        self._subscription = None
        self._finalizer = None
        self._unsubscribe_auth: Optional[Callable[[], None]] = None
        self.started = False

    # --- lifecycle ---

    @property
    def auth_ready(self) -> bool:
        return self.identity.auth_ready

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.user_id

    @property
    def bank_link_enabled(self) -> bool:
        return self.context.link_client is not None

    def start(self) -> None:
        """Resolve identity, then open the category subscription for that user."""
        if self.started:
            return
        self.started = True

        self._unsubscribe_auth = self.identity.on_auth_state_changed(self._on_auth_changed)
        self._resolve_identity()

    def _resolve_identity(self) -> None:
        outcome = self.identity.resolve()
        if outcome.kind != SUCCESS:
            self.status.set(outcome)

        if self.identity.auth_ready and self.identity.user_id:
            self.set_scope(Scope(self.context.settings.app_id, self.identity.user_id))

    def _on_auth_changed(self, user: Optional[AuthUser]) -> None:
        if user is None:
            self._close_subscription()
            self.scope = None
            self.categories = []
            self.link_flow = None
            return
        self.set_scope(Scope(self.context.settings.app_id, user.uid))

    def set_scope(self, scope: Scope) -> None:
        """Point the live subscription at ``scope``, closing any previous one."""
        if scope == self.scope and self.live:
            return

        self._close_subscription()
        self.scope = scope
        self.categories = []
        self._subscription = self.context.categories.list_categories(
            scope, _weak(self._on_snapshot), _weak(self._on_snapshot_error)
        )
        # Abandoned sessions are dropped silently, so close when collected
        self._finalizer = weakref.finalize(self, self._subscription.close)

        if self.bank_link_enabled:
            self.link_flow = BankLinkFlow(self.context.link_client, scope.user_id)
            self.request_link_token()

    def _on_snapshot(self, categories: List[Category]) -> None:
        self.categories = categories

    def _on_snapshot_error(self, error: StoreError) -> None:
        logger.error(f"Error fetching categories: {error}")
        self.status.set(
            Outcome.from_error("list_categories", error, f"Error fetching categories: {error}. Please try again.")
        )

    def _close_subscription(self) -> None:
        if self._finalizer is not None:
            self._finalizer.detach()
            self._finalizer = None
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    @property
    def subscription(self):
        return self._subscription

    @property
    def live(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def refresh(self) -> None:
        """Pick up backend changes the store was not told about. Called on every page tick."""
        if self.live:
            self.context.categories.store.poll()

    def resubscribe(self) -> None:
        """Reopen the category subscription after it failed."""
        if self.scope is not None and not self.live:
            self.set_scope(self.scope)

    def sign_out(self) -> Outcome:
        """End the signed-in session and start a fresh one."""
        self.status.set(Outcome.info("sign_out", "Signed out. Started a new session."))
        self.identity.sign_out()
        self._resolve_identity()
        return self.status.current

    def close(self) -> None:
        self._close_subscription()
        if self._unsubscribe_auth:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None

    # --- view data ---

    @property
    def is_empty(self) -> bool:
        return not self.categories

    def cards(self) -> List[CategoryCard]:
        return [CategoryCard.from_category(c) for c in self.categories]

    # --- category actions ---

    def open_add_modal(self) -> None:
        self.show_add_modal = True

    def close_add_modal(self) -> None:
        self.show_add_modal = False

    def add_category(self) -> Outcome:
        if self.scope is None:
            return self.status.set(Outcome.from_error("add_category", StoreError(NOT_READY_MESSAGE), NOT_READY_MESSAGE))

        name = self.new_category_name
        try:
            category = self.context.categories.add_category(self.scope, name, self.new_category_limit)
        except ValidationError as e:
            return self.status.set(
                Outcome.from_error(
                    "add_category", e, "Please enter a valid category name and a positive numeric limit."
                )
            )
        except StoreError as e:
            logger.error(f"Error adding category: {e}")
            return self.status.set(Outcome.from_error("add_category", e, f"Error adding category: {e}. Please try again."))

        message = f'Category "{category.name}" added successfully!'
        if category.replaced:
            message += f' It replaced the existing "{category.id}" category.'
        self.new_category_name = ""
        self.new_category_limit = ""
        self.show_add_modal = False
        return self.status.set(Outcome.success("add_category", message))

    def update_limit(self, category_id: str, raw_limit) -> Optional[Outcome]:
        """Apply a new weekly limit. ``raw_limit=None`` means the edit was cancelled."""
        if raw_limit is None:
            return None

        if self.scope is None:
            return self.status.set(Outcome.from_error("update_limit", StoreError(NOT_READY_MESSAGE), NOT_READY_MESSAGE))

        try:
            self.context.categories.update_limit(self.scope, category_id, raw_limit)
        except ValidationError as e:
            return self.status.set(
                Outcome.from_error("update_limit", e, "Invalid limit entered. Please enter a positive numeric value.")
            )
        except StoreError as e:
            logger.error(f"Error updating limit: {e}")
            return self.status.set(Outcome.from_error("update_limit", e, f"Error updating limit: {e}. Please try again."))

        return self.status.set(Outcome.success("update_limit", f'Limit for "{category_id}" updated successfully!'))

    def fetch_and_categorize(self) -> Outcome:
        # Transactions are fetched and categorized by a backend job that is not part of this app
        return self.status.set(
            Outcome.info(
                "fetch_and_categorize",
                "Fetching and categorizing transactions (backend integration needed)...",
            )
        )

    # --- bank link actions ---

    @property
    def link_state(self) -> Optional[LinkState]:
        return self.link_flow.state if self.link_flow else None

    def request_link_token(self) -> Optional[Outcome]:
        if self.link_flow is None:
            return None
        outcome = self.link_flow.request_link_token()
        if outcome is not None and not outcome.ok:
            self.status.set(outcome)
        return outcome

    def open_link(self) -> Optional[str]:
        """Mark the widget as opened and hand back the token it needs."""
        if self.link_flow is None:
            return None
        if self.link_flow.state == LinkState.NO_TOKEN:
            self.request_link_token()
        try:
            self.link_flow.open_link()
        except LinkError as e:
            logger.error(f"Error opening link widget: {e}")
            self.status.set(Outcome.from_error("open_link", e, "Bank link is not ready yet. Please try again."))
            return None
        return self.link_flow.link_token

    def complete_link(self, public_token: str) -> Optional[Outcome]:
        if self.link_flow is None:
            return None
        return self.status.set(self.link_flow.complete_link(public_token))

    def exit_link(self, error: Optional[dict] = None) -> None:
        if self.link_flow is not None:
            self.link_flow.on_exit(error)

    def restart_link(self) -> None:
        if self.link_flow is not None:
            self.link_flow.reset()
