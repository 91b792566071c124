import argparse

from categories import Scope, slugify
from config import load_settings
from context import build_context
from identity import get_fallback_user_id

DEFAULT_CATEGORIES = [
    ("Groceries", 100.0),
    ("Dining Out", 60.0),
    ("Transport", 40.0),
    ("Entertainment", 30.0),
]

def seed_categories(context, scope: Scope):
    created = 0
    for name, limit in DEFAULT_CATEGORIES:
        # Skip anything already there so re-running never resets spending
        if context.categories.get_category(scope, slugify(name)):
            print(f"Skipped '{name}' (already exists)")
            continue
        context.categories.add_category(scope, name, limit)
        print(f"Created '{name}' with weekly limit ${limit:,.2f}")
        created += 1
    return created

def set_spending(context, scope: Scope, category_id: str, amount: float):
    """
    Stand-in for the categorization job: overwrite this week's spending.
    """
    if context.categories.get_category(scope, category_id) is None:
        raise SystemExit(f"Category '{category_id}' not found in {scope.collection_path}")
    context.store.set(scope.collection_path, category_id, {"currentWeekSpending": amount}, merge=True)
    print(f"Set spending for '{category_id}' to ${amount:,.2f}")

def main():
    parser = argparse.ArgumentParser(description="Seed budget categories for one user")
    parser.add_argument("--user-id", help="User id to seed (default: this machine's local user id)")
    parser.add_argument("--spending", nargs=2, metavar=("CATEGORY_ID", "AMOUNT"),
                        help="Set currentWeekSpending for one category instead of seeding")
    args = parser.parse_args()

    settings = load_settings()
    context = build_context(settings)
    user_id = args.user_id or get_fallback_user_id(context.storage)
    scope = Scope(settings.app_id, user_id)

    if args.spending:
        category_id, amount = args.spending
        set_spending(context, scope, category_id, float(amount))
        return

    created = seed_categories(context, scope)
    print(f"Seeding complete for {scope.collection_path}: {created} created.")

if __name__ == "__main__":
    main()
