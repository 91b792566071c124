"""Budget categories: the model, input validation and the store adapter."""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from errors import StoreError, ValidationError
from logger import get_logger
from store import DocumentStore, Subscription

logger = get_logger()

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class Scope:
    """Per-deployment, per-user prefix that owns a user's categories."""

    deployment_id: str
    user_id: str

    @property
    def collection_path(self) -> str:
        return f"artifacts/{self.deployment_id}/users/{self.user_id}/categories"


@dataclass
class Category:
    id: str
    name: str
    weekly_limit: float
    current_week_spending: float = 0.0
    last_updated: str = ""
    # Set by add_category when the write replaced an existing document
    replaced: bool = False

    @property
    def remaining(self) -> float:
        return self.weekly_limit - self.current_week_spending

    @property
    def is_over_budget(self) -> bool:
        return self.remaining < 0

    @property
    def progress_percentage(self) -> float:
        if self.weekly_limit <= 0:
            return 0.0
        return self.current_week_spending / self.weekly_limit * 100

    @property
    def display_progress(self) -> float:
        """Progress bar width, capped at 100."""
        return min(100.0, self.progress_percentage)

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "Category":
        return cls(
            id=doc_id,
            name=data.get("name") or doc_id,
            weekly_limit=_as_number(data.get("weeklyLimit")),
            current_week_spending=_as_number(data.get("currentWeekSpending")),
            last_updated=data.get("lastUpdated") or "",
        )

    def to_document(self) -> dict:
        return {
            "name": self.name,
            "weeklyLimit": self.weekly_limit,
            "currentWeekSpending": self.current_week_spending,
            "lastUpdated": self.last_updated,
        }


def _as_number(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def slugify(name: str) -> str:
    """Document id for a category name: lower-cased, whitespace runs become '-'."""
    return _WHITESPACE.sub("-", name.strip().lower())


def parse_limit(raw) -> float:
    """Parse a weekly limit from form input. Must be a positive finite number."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError("Please enter a positive numeric limit.")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError("Please enter a positive numeric limit.")
    if not math.isfinite(value) or value <= 0:
        raise ValidationError("Please enter a positive numeric limit.")
    return value


def validate_name(name: Optional[str]) -> str:
    trimmed = (name or "").strip()
    if not trimmed:
        raise ValidationError("Please enter a valid category name.")
    return trimmed


class CategoryStore:
    """Reads and writes a user's categories in the document store."""

    def __init__(self, store: DocumentStore, clock: Callable[[], str] = utc_now_iso):
        self.store = store
        self.clock = clock

    def list_categories(
        self,
        scope: Scope,
        on_snapshot: Callable[[List[Category]], None],
        on_error: Optional[Callable[[StoreError], None]] = None,
    ) -> Subscription:
        """Subscribe to the scope's categories.

        ``on_snapshot`` gets the full list, in delivery order, on every change
        until the returned subscription is closed.
        """
        def handle(docs):
            on_snapshot([Category.from_document(doc.id, doc.data) for doc in docs])

        logger.debug(f"Subscribing to {scope.collection_path}")
        return self.store.on_snapshot(scope.collection_path, handle, on_error)

    def get_category(self, scope: Scope, category_id: str) -> Optional[Category]:
        data = self.store.get(scope.collection_path, category_id)
        return Category.from_document(category_id, data) if data is not None else None

    def add_category(self, scope: Scope, name: str, limit) -> Category:
        """Create a category. An existing category with the same id is overwritten."""
        trimmed = validate_name(name)
        weekly_limit = parse_limit(limit)
        category_id = slugify(trimmed)

        replaced = self.store.get(scope.collection_path, category_id) is not None
        if replaced:
            logger.warning(
                f"Category id '{category_id}' already exists in {scope.collection_path}; overwriting it"
            )

        category = Category(
            id=category_id,
            name=trimmed,
            weekly_limit=weekly_limit,
            current_week_spending=0.0,
            last_updated=self.clock(),
            replaced=replaced,
        )
        self.store.set(scope.collection_path, category_id, category.to_document())
        logger.info(f"Saved category '{category_id}' (limit {weekly_limit:.2f})")
        return category

    def update_limit(self, scope: Scope, category_id: str, new_limit) -> float:
        """Change only ``weeklyLimit`` and ``lastUpdated`` of one category."""
        weekly_limit = parse_limit(new_limit)
        self.store.set(
            scope.collection_path,
            category_id,
            {"weeklyLimit": weekly_limit, "lastUpdated": self.clock()},
            merge=True,
        )
        logger.info(f"Updated limit of '{category_id}' to {weekly_limit:.2f}")
        return weekly_limit
