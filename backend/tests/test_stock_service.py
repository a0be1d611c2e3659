"""
Stock ledger tests.

Covers debit/credit bookkeeping, the non-negative floor, manual
adjustments, low-stock listing, lazy history and reconciliation.
"""

import pytest

from pharmapos.errors import InsufficientStock, NotFound, ValidationError
from pharmapos.models import StockMovement
from pharmapos.services import stock_service


def _movements(db_session, product):
    return (
        db_session.query(StockMovement)
        .filter_by(product_id=product.id)
        .order_by(StockMovement.id.asc())
        .all()
    )


class TestDebitCredit:
    def test_opening_stock_is_recorded_as_in_movement(self, db_session, make_product):
        p = make_product(stock=12)

        movements = _movements(db_session, p)
        assert len(movements) == 1
        assert movements[0].direction == "in"
        assert movements[0].quantity == 12
        assert movements[0].notes == stock_service.OPENING_BALANCE_NOTE

    def test_product_created_without_stock_has_no_movement(self, db_session, make_product):
        p = make_product(stock=0)
        assert _movements(db_session, p) == []

    def test_debit_decrements_and_appends_out_movement(self, db_session, make_product):
        p = make_product(stock=10)

        movement = stock_service.debit(p.id, 4, notes="counter sale")
        db_session.commit()

        assert p.stock_quantity == 6
        assert movement.direction == "out"
        assert movement.quantity == 4
        assert movement.signed_quantity == -4

    def test_debit_whole_stock_reaches_zero(self, db_session, make_product):
        p = make_product(stock=3)
        stock_service.debit(p.id, 3)
        db_session.commit()
        assert p.stock_quantity == 0

    def test_debit_beyond_stock_raises_and_changes_nothing(self, db_session, make_product):
        p = make_product(stock=2)

        with pytest.raises(InsufficientStock) as exc:
            stock_service.debit(p.id, 3)
        db_session.rollback()

        assert exc.value.details["items"] == [
            {"product_id": p.id, "requested_quantity": 3, "on_hand": 2}
        ]
        assert p.stock_quantity == 2
        assert len(_movements(db_session, p)) == 1

    def test_credit_increments_and_appends_in_movement(self, db_session, make_product):
        p = make_product(stock=1)

        stock_service.credit(p.id, 5, reference_order_id=77)
        db_session.commit()

        assert p.stock_quantity == 6
        last = _movements(db_session, p)[-1]
        assert (last.direction, last.quantity, last.reference_order_id) == ("in", 5, 77)

    @pytest.mark.parametrize("qty", [0, -1, "2", 1.5, True])
    def test_non_positive_or_non_integer_quantity_rejected(self, db_session, make_product, qty):
        p = make_product(stock=5)
        with pytest.raises(ValidationError):
            stock_service.debit(p.id, qty)

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFound):
            stock_service.credit(999, 1)


class TestAdjustStock:
    def test_manual_restock_commits(self, db_session, make_product):
        p = make_product(stock=2)

        movement = stock_service.adjust_stock(product_id=p.id, direction="in", quantity=8)

        db_session.expire_all()
        assert p.stock_quantity == 10
        assert movement.notes == "manual restock"

    def test_write_off_respects_floor(self, db_session, make_product):
        p = make_product(stock=2)

        with pytest.raises(InsufficientStock):
            stock_service.adjust_stock(product_id=p.id, direction="out", quantity=3, notes="damaged")

        db_session.expire_all()
        assert p.stock_quantity == 2
        assert len(_movements(db_session, p)) == 1

    def test_unknown_direction(self, db_session, make_product):
        p = make_product(stock=2)
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(product_id=p.id, direction="sideways", quantity=1)


class TestLowStock:
    def test_low_stock_sorted_by_stock_then_id(self, db_session, make_product):
        a = make_product(name="A", stock=3, reorder_level=5)
        make_product(name="B", stock=9, reorder_level=5)
        c = make_product(name="C", stock=5, reorder_level=5)
        d = make_product(name="D", stock=0, reorder_level=2)

        assert [p.id for p in stock_service.get_low_stock()] == [d.id, a.id, c.id]

    def test_only_products_at_or_below_reorder_level(self, db_session, make_product):
        low = make_product(stock=15, reorder_level=20)
        make_product(stock=25, reorder_level=20)

        assert [p.id for p in stock_service.get_low_stock()] == [low.id]

    def test_no_low_stock(self, db_session, make_product):
        make_product(stock=50, reorder_level=5)
        assert stock_service.get_low_stock() == []


class TestHistory:
    def test_history_is_newest_first(self, db_session, make_product):
        p = make_product(stock=10)
        stock_service.debit(p.id, 1, notes="first")
        stock_service.debit(p.id, 2, notes="second")
        db_session.commit()

        notes = [m.notes for m in stock_service.get_history(p.id)]
        assert notes == ["second", "first", stock_service.OPENING_BALANCE_NOTE]

    def test_history_batches_and_restarts(self, db_session, make_product):
        p = make_product(stock=20)
        for _ in range(4):
            stock_service.debit(p.id, 1)
        db_session.commit()

        history = stock_service.get_history(p.id, batch_size=2)
        first = [m.id for m in history]
        second = [m.id for m in history]

        assert len(first) == 5
        assert first == second
        assert history.count() == 5

    def test_movement_appended_mid_iteration_is_not_repeated(self, db_session, make_product):
        p = make_product(stock=20)
        for _ in range(4):
            stock_service.debit(p.id, 1)
        db_session.commit()

        it = iter(stock_service.get_history(p.id, batch_size=2))
        seen = [next(it).id, next(it).id]
        stock_service.adjust_stock(product_id=p.id, direction="in", quantity=3, notes="late delivery")
        seen.extend(m.id for m in it)

        assert len(seen) == len(set(seen)) == 5
        assert "late delivery" not in [m.notes for m in db_session.query(StockMovement).filter(StockMovement.id.in_(seen))]

    def test_history_stops_early_without_reading_everything(self, db_session, make_product):
        p = make_product(stock=20)
        for _ in range(5):
            stock_service.debit(p.id, 1)
        db_session.commit()

        it = iter(stock_service.get_history(p.id, batch_size=2))
        assert next(it).quantity == 1
        assert next(it).quantity == 1

    def test_history_for_unknown_product(self, db_session):
        with pytest.raises(NotFound):
            stock_service.get_history(404)

    def test_invalid_batch_size(self):
        with pytest.raises(ValidationError):
            stock_service.StockHistory(1, batch_size=0)


class TestReconcile:
    def test_reconcile_after_mixed_movements(self, db_session, make_product):
        p = make_product(stock=10)
        stock_service.debit(p.id, 4)
        stock_service.credit(p.id, 1)
        db_session.commit()

        report = stock_service.reconcile(p.id)

        assert report == {
            "product_id": p.id,
            "sku": p.sku,
            "opening": 10,
            "total_in": 11,
            "total_out": 4,
            "expected": 7,
            "actual": 7,
            "balanced": True,
        }

    def test_reconcile_detects_out_of_band_edit(self, db_session, make_product):
        p = make_product(stock=10)
        p.stock_quantity = 3
        db_session.commit()

        report = stock_service.reconcile(p.id)
        assert report["balanced"] is False
        assert report["expected"] == 10

    def test_reconcile_all_covers_every_product(self, db_session, make_product):
        make_product(stock=1)
        make_product(stock=0)
        reports = stock_service.reconcile_all()
        assert len(reports) == 2
        assert all(r["balanced"] for r in reports)
