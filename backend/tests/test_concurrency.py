"""
Concurrency tests: lock timeouts, retry of lock contention, storage failures,
and concurrent writers against a file-backed SQLite database.

Each worker runs in its own thread with its own app context (and so its own
session and connection), the way concurrent requests would.
"""

import sqlite3
import threading
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from stockledger import create_app
from stockledger.errors import InsufficientStockError, LockTimeoutError, PersistenceError
from stockledger.extensions import db
from stockledger.models import Product, Sale, StockAdjustment
from stockledger.services import concurrency, ledger_service, sales_service
from stockledger.services.concurrency import product_locks, run_in_transaction


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'LOCK_TIMEOUT_SECONDS': 10,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def run_workers(app, targets):
    results = []
    lock = threading.Lock()

    def worker(target):
        with app.app_context():
            try:
                outcome = target()
                with lock:
                    results.append(outcome)
            except Exception as exc:
                with lock:
                    results.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(t,)) for t in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


class TestConcurrentSales:

    def test_no_oversell(self, file_app):
        with file_app.app_context():
            product_id = ledger_service.create_product("Last units", 1000, 400, stock_quantity=5).id

        def buy_one():
            sale = sales_service.finalize_sale(
                [{"product_id": product_id, "quantity": 1}],
                payment={"amount_paid_cents": 1000},
            )
            return sale.receipt_number

        results = run_workers(file_app, [buy_one] * 10)

        receipts = [r for r in results if isinstance(r, str)]
        failures = [r for r in results if not isinstance(r, str)]
        assert len(receipts) == 5
        assert len(set(receipts)) == 5
        assert all(isinstance(f, InsufficientStockError) for f in failures)

        with file_app.app_context():
            assert db.session.get(Product, product_id).stock_quantity == Decimal(0)
            assert Sale.query.count() == 5
            # opening stock + five sales
            assert StockAdjustment.query.filter_by(product_id=product_id).count() == 6

    def test_receipts_unique_across_products(self, file_app):
        with file_app.app_context():
            product_ids = [
                ledger_service.create_product(f"Item {i}", 500, 200, stock_quantity=10).id
                for i in range(8)
            ]

        def buyer(product_id):
            def _buy():
                return sales_service.finalize_sale(
                    [{"product_id": product_id, "quantity": 1}],
                    payment_method="card",
                ).receipt_number
            return _buy

        results = run_workers(file_app, [buyer(pid) for pid in product_ids])

        assert all(isinstance(r, str) for r in results), results
        assert len(set(results)) == len(product_ids)

    def test_concurrent_replenishment_keeps_every_unit(self, file_app):
        with file_app.app_context():
            product_id = ledger_service.create_product("Flour", 300, 100, stock_quantity=0).id

        def receive():
            return ledger_service.apply_stock_adjustment(product_id, 10, "add", new_cost_cents=100).id

        results = run_workers(file_app, [receive] * 6)

        assert all(isinstance(r, int) for r in results), results
        with file_app.app_context():
            product = db.session.get(Product, product_id)
            assert product.stock_quantity == Decimal(60)
            assert product.cost_price_cents == 100


def locked_error():
    return OperationalError("UPDATE products", {}, sqlite3.OperationalError("database is locked"))


class TestLockTimeout:

    def test_adjustment_times_out_while_product_is_locked(self, app, db_session, make_product, stock_of, monkeypatch):
        product_id = make_product(stock_quantity=10).id
        monkeypatch.setitem(app.config, "LOCK_TIMEOUT_SECONDS", 0.2)

        held = threading.Event()
        release = threading.Event()

        def holder():
            with product_locks([product_id], timeout=1):
                held.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        try:
            assert held.wait(5)
            with pytest.raises(LockTimeoutError) as excinfo:
                ledger_service.apply_stock_adjustment(product_id, 5, "add")
        finally:
            release.set()
            thread.join()

        assert excinfo.value.http_status == 503
        assert excinfo.value.details["product_id"] == product_id
        assert stock_of(product_id) == Decimal(10)
        assert StockAdjustment.query.filter_by(product_id=product_id).count() == 0

        ledger_service.apply_stock_adjustment(product_id, 5, "add")
        assert stock_of(product_id) == Decimal(15)


class TestRetryAndStorageFailures:

    def test_lock_contention_is_retried(self, db_session, monkeypatch):
        monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)
        calls = {"n": 0}

        def flaky():
            calls["n"] += 1
            if calls["n"] < 3:
                raise locked_error()
            return "committed"

        assert run_in_transaction(flaky) == "committed"
        assert calls["n"] == 3

    def test_persistent_contention_becomes_lock_timeout(self, db_session, monkeypatch):
        monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)
        calls = {"n": 0}

        def always_locked():
            calls["n"] += 1
            raise locked_error()

        with pytest.raises(LockTimeoutError):
            run_in_transaction(always_locked)
        assert calls["n"] == 3

    def test_other_operational_errors_are_not_retried(self, db_session):
        calls = {"n": 0}

        def disk_failure():
            calls["n"] += 1
            raise OperationalError("UPDATE products", {}, sqlite3.OperationalError("disk I/O error"))

        with pytest.raises(PersistenceError) as excinfo:
            run_in_transaction(disk_failure)
        assert calls["n"] == 1
        assert excinfo.value.http_status == 500

    def test_missing_schema_is_a_persistence_error(self):
        bare_app = create_app({
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        })

        with bare_app.app_context():
            try:
                with pytest.raises(PersistenceError) as excinfo:
                    ledger_service.apply_stock_adjustment(1, 5, "add")
                assert not isinstance(excinfo.value, LockTimeoutError)
            finally:
                db.session.remove()
                db.engine.dispose()
