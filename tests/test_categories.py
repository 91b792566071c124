import pytest

from categories import Category, Scope, parse_limit, slugify, validate_name
from errors import ValidationError


class TestDerivedFields:
    """Tests for remaining / over-budget / progress calculations."""

    def test_under_budget(self):
        category = Category(id="groceries", name="Groceries", weekly_limit=100.0, current_week_spending=40.0)

        assert category.remaining == 60.0
        assert category.is_over_budget is False
        assert category.progress_percentage == 40.0
        assert category.display_progress == 40.0

    def test_over_budget_progress_is_clamped(self):
        """Limit 100, spending 150: bar full, 50 over."""
        category = Category(id="groceries", name="Groceries", weekly_limit=100.0, current_week_spending=150.0)

        assert category.remaining == -50.0
        assert category.is_over_budget is True
        assert category.progress_percentage == 150.0
        assert category.display_progress == 100.0

    def test_exactly_at_limit_is_not_over(self):
        category = Category(id="fuel", name="Fuel", weekly_limit=50.0, current_week_spending=50.0)

        assert category.remaining == 0
        assert category.is_over_budget is False
        assert category.display_progress == 100.0

    def test_from_document_reads_camel_case_fields(self):
        category = Category.from_document(
            "dining-out",
            {"name": "Dining Out", "weeklyLimit": 60, "currentWeekSpending": 12.5, "lastUpdated": "2026-10-12T09:00:00.000Z"},
        )

        assert category.id == "dining-out"
        assert category.name == "Dining Out"
        assert category.weekly_limit == 60.0
        assert category.current_week_spending == 12.5
        assert category.last_updated == "2026-10-12T09:00:00.000Z"

    def test_from_document_missing_numbers_default_to_zero(self):
        category = Category.from_document("partial", {"name": "Partial"})

        assert category.weekly_limit == 0.0
        assert category.current_week_spending == 0.0
        assert category.progress_percentage == 0.0


class TestInputValidation:
    def test_slugify_lowercases_and_hyphenates(self):
        assert slugify("Groceries") == "groceries"
        assert slugify("Dining Out") == "dining-out"
        assert slugify("  Coffee   Shops ") == "coffee-shops"

    @pytest.mark.parametrize("raw,expected", [("100.00", 100.0), ("42", 42.0), (7.5, 7.5), (" 15 ", 15.0)])
    def test_parse_limit_accepts_positive_numbers(self, raw, expected):
        assert parse_limit(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", None, "abc", "0", "-5", "nan", "inf"])
    def test_parse_limit_rejects_bad_input(self, raw):
        with pytest.raises(ValidationError):
            parse_limit(raw)

    def test_validate_name_trims(self):
        assert validate_name("  Rent ") == "Rent"

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_validate_name_rejects_blank(self, name):
        with pytest.raises(ValidationError):
            validate_name(name)


class TestCategoryStore:
    """Tests for the category store adapter."""

    def test_scope_collection_path(self):
        assert Scope("my-app", "u42").collection_path == "artifacts/my-app/users/u42/categories"

    def test_add_category_writes_document(self, category_store, sql_store, scope):
        category = category_store.add_category(scope, "Groceries", "100.00")

        assert category.id == "groceries"
        assert category.weekly_limit == 100.0
        assert category.current_week_spending == 0.0
        assert category.replaced is False

        doc = sql_store.get(scope.collection_path, "groceries")
        assert doc == {
            "name": "Groceries",
            "weeklyLimit": 100.0,
            "currentWeekSpending": 0.0,
            "lastUpdated": "2026-10-12T09:00:00.000Z",
        }

    def test_add_category_trims_name(self, category_store, sql_store, scope):
        category_store.add_category(scope, "  Dining Out  ", 60)

        doc = sql_store.get(scope.collection_path, "dining-out")
        assert doc["name"] == "Dining Out"

    def test_empty_name_makes_no_write(self, category_store, sql_store, scope):
        with pytest.raises(ValidationError):
            category_store.add_category(scope, "   ", "100")

        assert sql_store.writes == []

    @pytest.mark.parametrize("limit", ["abc", "0", "-10", ""])
    def test_bad_limit_makes_no_write(self, category_store, sql_store, scope, limit):
        with pytest.raises(ValidationError):
            category_store.add_category(scope, "Groceries", limit)

        assert sql_store.writes == []

    def test_update_limit_keeps_spending(self, category_store, sql_store, scope):
        category_store.add_category(scope, "Groceries", "100")
        # Spending is filled in by an outside process
        sql_store.set(scope.collection_path, "groceries", {"currentWeekSpending": 35.0}, merge=True)

        category_store.update_limit(scope, "groceries", "150")

        doc = sql_store.get(scope.collection_path, "groceries")
        assert doc["weeklyLimit"] == 150.0
        assert doc["currentWeekSpending"] == 35.0
        assert doc["name"] == "Groceries"
        assert doc["lastUpdated"] == "2026-10-12T09:00:01.000Z"

    def test_update_limit_is_a_merge_of_two_fields(self, category_store, sql_store, scope):
        category_store.add_category(scope, "Groceries", "100")

        category_store.update_limit(scope, "groceries", 80)

        path, doc_id, data, merge = sql_store.writes[-1]
        assert (path, doc_id, merge) == (scope.collection_path, "groceries", True)
        assert set(data) == {"weeklyLimit", "lastUpdated"}

    def test_update_limit_rejects_non_positive(self, category_store, sql_store, scope):
        category_store.add_category(scope, "Groceries", "100")
        writes_before = len(sql_store.writes)

        with pytest.raises(ValidationError):
            category_store.update_limit(scope, "groceries", "-1")

        assert len(sql_store.writes) == writes_before
        assert sql_store.get(scope.collection_path, "groceries")["weeklyLimit"] == 100.0

    def test_readding_same_slug_overwrites(self, category_store, sql_store, scope):
        """Names that normalize to the same id replace the earlier document, spending included."""
        category_store.add_category(scope, "Groceries", "100")
        sql_store.set(scope.collection_path, "groceries", {"currentWeekSpending": 30.0}, merge=True)

        category = category_store.add_category(scope, "groceries", "50")

        assert category.replaced is True
        doc = sql_store.get(scope.collection_path, "groceries")
        assert doc["name"] == "groceries"
        assert doc["weeklyLimit"] == 50.0
        assert doc["currentWeekSpending"] == 0.0

    def test_get_category(self, category_store, scope):
        category_store.add_category(scope, "Transport", "40")

        found = category_store.get_category(scope, "transport")
        missing = category_store.get_category(scope, "nope")

        assert found.name == "Transport"
        assert missing is None

    def test_list_categories_streams_snapshots(self, category_store, scope):
        snapshots = []
        subscription = category_store.list_categories(scope, snapshots.append)

        category_store.add_category(scope, "Groceries", "100")
        category_store.add_category(scope, "Dining Out", "60")

        assert [len(s) for s in snapshots] == [0, 1, 2]
        assert [c.id for c in snapshots[-1]] == ["dining-out", "groceries"]
        subscription.close()

    def test_closed_subscription_stops_delivering(self, category_store, scope):
        snapshots = []
        subscription = category_store.list_categories(scope, snapshots.append)
        subscription.close()

        category_store.add_category(scope, "Groceries", "100")

        assert len(snapshots) == 1
        assert subscription.active is False

    def test_scopes_are_isolated(self, category_store, scope):
        other = Scope(scope.deployment_id, "someone-else")
        mine, theirs = [], []
        category_store.list_categories(scope, mine.append)
        category_store.list_categories(other, theirs.append)

        category_store.add_category(other, "Travel", "200")

        assert len(mine) == 1
        assert [c.id for c in theirs[-1]] == ["travel"]
