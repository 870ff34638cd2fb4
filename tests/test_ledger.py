"""Tests for the category registry and the transaction store."""

import types
import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from finance_tracker.errors import CategoryInUse, CategoryTypeMismatch, RecordNotFound
from finance_tracker.ledger import CategoryRegistry, TransactionStore, filter_applicable
from finance_tracker.models.finance import (
    CategoryType,
    TransactionQuery,
    TransactionType,
)

from conftest import make_category, make_transaction


class TestCategoryRegistry:
    """Lookup, applicability and deletion guard."""

    def test_filter_applicable_keeps_order(self):
        rent = make_category("Miete", CategoryType.EXPENSE)
        sales = make_category("Umsatz", CategoryType.REVENUE)
        misc = make_category("Sonstiges", CategoryType.BOTH)

        expense = filter_applicable([rent, sales, misc], TransactionType.EXPENSE)
        revenue = filter_applicable([rent, sales, misc], TransactionType.REVENUE)

        assert expense == [rent, misc]
        assert revenue == [sales, misc]

    def test_method_matches_module_function(self):
        categories = [
            make_category("Miete", CategoryType.EXPENSE),
            make_category("Umsatz", CategoryType.REVENUE),
        ]
        registry = CategoryRegistry(categories)
        assert registry.filter_applicable(TransactionType.REVENUE) == [categories[1]]

    def test_is_vat_applicable(self):
        insurance = make_category("Versicherung", vat_applicable=False)
        registry = CategoryRegistry([insurance])

        assert registry.is_vat_applicable(insurance.id) is False
        # Unknown categories count as VAT-applicable
        assert registry.is_vat_applicable(uuid4()) is True

    def test_require_unknown_raises(self):
        with pytest.raises(RecordNotFound):
            CategoryRegistry().require(uuid4())

    def test_name_of_unknown_is_empty(self):
        assert CategoryRegistry().name_of(uuid4()) == ""

    def test_ensure_compatible_mismatch(self):
        rent = make_category("Miete", CategoryType.EXPENSE)
        registry = CategoryRegistry([rent])

        with pytest.raises(CategoryTypeMismatch) as exc_info:
            registry.ensure_compatible(rent.id, TransactionType.REVENUE)

        assert exc_info.value.category_name == "Miete"
        assert exc_info.value.transaction_type == "revenue"

    def test_ensure_compatible_returns_category(self):
        misc = make_category("Sonstiges")
        registry = CategoryRegistry([misc])
        assert registry.ensure_compatible(misc.id, TransactionType.REVENUE) is misc

    def test_ensure_deletable_counts_references(self):
        rent = make_category("Miete", CategoryType.EXPENSE)
        other = make_category("Büro")
        registry = CategoryRegistry([rent, other])
        transactions = [
            make_transaction(rent.id),
            make_transaction(rent.id),
            make_transaction(other.id),
        ]

        with pytest.raises(CategoryInUse) as exc_info:
            registry.ensure_deletable(rent.id, transactions)

        assert exc_info.value.count == 2
        assert "2 transactions assigned" in exc_info.value.user_message

    def test_ensure_deletable_singular_message(self):
        rent = make_category("Miete")
        registry = CategoryRegistry([rent])

        with pytest.raises(CategoryInUse) as exc_info:
            registry.ensure_deletable(rent.id, [make_transaction(rent.id)])

        assert "1 transaction assigned" in exc_info.value.user_message

    def test_ensure_deletable_unused(self):
        rent = make_category("Miete")
        registry = CategoryRegistry([rent])
        assert registry.ensure_deletable(rent.id, []) is rent

    def test_replace_and_remove(self):
        rent = make_category("Miete")
        registry = CategoryRegistry([rent])

        renamed = rent.model_copy(update={"name": "Büromiete"})
        registry.replace(renamed)

        assert registry.name_of(rent.id) == "Büromiete"
        assert registry.remove(rent.id) is True
        assert registry.remove(rent.id) is False
        assert len(registry) == 0


class TestTransactionStore:
    """Ordering, mutation, search and sort."""

    @pytest.fixture
    def category(self):
        return make_category("Büro")

    def test_newest_date_first(self, category):
        store = TransactionStore()
        old = store.add(make_transaction(category.id, transaction_date=date(2026, 9, 1)))
        new = store.add(make_transaction(category.id, transaction_date=date(2026, 10, 1)))

        assert store.all() == [new, old]

    def test_same_date_latest_insert_first(self, category):
        store = TransactionStore()
        first = store.add(make_transaction(category.id, description="Erste"))
        second = store.add(make_transaction(category.id, description="Zweite"))

        assert [t.id for t in store] == [second.id, first.id]

    def test_same_date_created_at_breaks_tie(self, category):
        noon = datetime(2026, 10, 2, 12, 0, tzinfo=timezone.utc)
        morning = datetime(2026, 10, 2, 8, 0, tzinfo=timezone.utc)
        later = make_transaction(category.id, created_at=noon)
        earlier = make_transaction(category.id, created_at=morning)
        # Loaded records keep their identity and timestamps
        store = TransactionStore([later, earlier])

        assert store.all() == [later, earlier]

    def test_add_assigns_identity(self, category):
        transaction = make_transaction(category.id)
        stored = TransactionStore().add(transaction)

        assert stored.id != transaction.id
        assert stored.created_at == stored.updated_at

    def test_update_merges_fields(self, category):
        store = TransactionStore()
        stored = store.add(make_transaction(category.id))

        updated = store.update(stored.id, {"description": "Toner", "id": uuid4()})

        assert updated.id == stored.id
        assert updated.description == "Toner"
        assert updated.amount == Decimal("100.00")
        assert updated.updated_at >= stored.updated_at

    def test_update_does_not_recompute_vat(self, category):
        store = TransactionStore()
        stored = store.add(make_transaction(category.id))

        with pytest.raises(ValueError):
            store.update(stored.id, {"amount": Decimal("200.00")})

        assert store.get(stored.id).amount == Decimal("100.00")

    def test_update_unknown_raises(self):
        with pytest.raises(RecordNotFound):
            TransactionStore().update(uuid4(), {"description": "x"})

    def test_delete(self, category):
        store = TransactionStore()
        stored = store.add(make_transaction(category.id))

        assert store.delete(stored.id) is True
        assert store.delete(stored.id) is False
        assert len(store) == 0

    def test_references(self, category):
        store = TransactionStore()
        store.add(make_transaction(category.id))
        store.add(make_transaction(category.id))
        store.add(make_transaction(uuid4()))

        assert store.references(category.id) == 2

    def test_search_description_category_and_notes(self, category):
        rent = make_category("Miete")
        registry = CategoryRegistry([category, rent])
        store = TransactionStore()
        paper = store.add(make_transaction(category.id, description="Druckerpapier"))
        flat = store.add(make_transaction(rent.id, description="Oktober"))
        noted = store.add(make_transaction(category.id, description="Stifte", notes="für PAPIERkram"))

        by_description = store.list_transactions(TransactionQuery(search="papier"), registry)
        by_category = store.list_transactions(TransactionQuery(search="MIETE"), registry)

        assert {t.id for t in by_description} == {paper.id, noted.id}
        assert [t.id for t in by_category] == [flat.id]

    def test_filters(self, category):
        store = TransactionStore()
        store.add(make_transaction(category.id, transaction_date=date(2026, 8, 15)))
        september = store.add(make_transaction(
            category.id,
            transaction_type=TransactionType.REVENUE,
            transaction_date=date(2026, 9, 15),
        ))
        store.add(make_transaction(category.id, transaction_date=date(2026, 10, 15)))

        result = store.list_transactions(TransactionQuery(
            date_from=date(2026, 9, 1),
            date_to=date(2026, 9, 30),
        ))
        revenue = store.list_transactions(
            TransactionQuery(transaction_type=TransactionType.REVENUE)
        )

        assert result == [september]
        assert revenue == [september]

    def test_sort_by_amount_ascending(self, category):
        store = TransactionStore()
        for amount in ("50.00", "10.00", "30.00"):
            store.add(make_transaction(category.id, amount=amount, vat="0"))

        result = store.list_transactions(
            TransactionQuery(sort_field="amount", descending=False)
        )

        assert [t.amount for t in result] == [
            Decimal("10.00"), Decimal("30.00"), Decimal("50.00"),
        ]

    def test_sort_missing_values_last(self, category):
        store = TransactionStore()
        store.add(make_transaction(category.id, notes=None, description="ohne"))
        store.add(make_transaction(category.id, notes="b", description="b"))
        store.add(make_transaction(category.id, notes="A", description="a"))

        ascending = store.list_transactions(TransactionQuery(sort_field="notes", descending=False))
        descending = store.list_transactions(TransactionQuery(sort_field="notes", descending=True))

        assert [t.description for t in ascending] == ["a", "b", "ohne"]
        assert [t.description for t in descending] == ["b", "a", "ohne"]

    def test_sort_text_with_umlauts(self, category):
        store = TransactionStore()
        for description in ("Zahnarzt", "Ärztekammer", "apfel"):
            store.add(make_transaction(category.id, description=description))

        result = store.list_transactions(
            TransactionQuery(sort_field="description", descending=False)
        )

        assert [t.description for t in result] == ["apfel", "Ärztekammer", "Zahnarzt"]

    def test_add_stamps_aware_utc(self, category):
        stored = TransactionStore().add(make_transaction(category.id))

        assert stored.created_at.tzinfo is not None
        assert stored.created_at.utcoffset().total_seconds() == 0

    def test_sort_by_category_name(self, category):
        alpha = make_category("Anwalt")
        zulu = make_category("Zeitschriften")
        registry = CategoryRegistry([alpha, zulu])
        store = TransactionStore()
        store.add(make_transaction(zulu.id, description="z"))
        store.add(make_transaction(alpha.id, description="a"))

        result = store.list_transactions(
            TransactionQuery(sort_field="category", descending=False), registry
        )

        assert [t.description for t in result] == ["a", "z"]

    def test_view_is_lazy(self, category):
        store = TransactionStore()
        store.add(make_transaction(category.id))

        view = store.view(TransactionQuery())

        assert isinstance(view, types.GeneratorType)
        assert len(list(view)) == 1

    def test_with_categories(self, category):
        registry = CategoryRegistry([category])
        store = TransactionStore()
        known = store.add(make_transaction(category.id, transaction_date=date(2026, 10, 2)))
        orphan = store.add(make_transaction(uuid4(), transaction_date=date(2026, 10, 1)))

        joined = store.with_categories(registry)

        assert joined == [(known, category), (orphan, None)]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
