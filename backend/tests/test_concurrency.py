"""
Concurrency tests for the stock ledger.

Uses a file-backed SQLite database so each worker thread gets its own
connection and the write lock taken by atomic() is actually contended.
"""
import os
import tempfile
import threading
import unittest
from unittest import mock

from sqlalchemy.exc import OperationalError

from stockkeeper import create_app
from stockkeeper.errors import InsufficientStockError, StorageFailureError
from stockkeeper.extensions import db
from stockkeeper.models import InventoryMovement, Product, Transaction, User
from stockkeeper.services import stock_ledger_service, transaction_service
from stockkeeper.services.concurrency import run_with_retry


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "STOCK_RETRY_BACKOFF_SECONDS": 0,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            user = User(username="concurrent_user", email="concurrent@example.com")
            db.session.add(user)
            product = Product(name="Concurrent Product", sku="CONCUR-1", price_cents=1000, stock_quantity=10)
            db.session.add(product)
            db.session.commit()
            self.user_id = user.id
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_workers(self, targets):
        results = []
        lock = threading.Lock()

        def worker(target):
            with self.app.app_context():
                try:
                    outcome = target()
                    with lock:
                        results.append(("ok", outcome))
                except Exception as exc:
                    with lock:
                        results.append(("error", exc))
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=(t,)) for t in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def _stock(self):
        with self.app.app_context():
            return db.session.get(Product, self.product_id).stock_quantity

    def test_concurrent_out_movements_do_not_oversell(self):
        def take_six():
            return stock_ledger_service.record_movement(self.product_id, "out", 6).id

        results = self._run_workers([take_six, take_six])

        ok = [r for r in results if r[0] == "ok"]
        errors = [r[1] for r in results if r[0] == "error"]
        self.assertEqual(len(ok), 1)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], InsufficientStockError)
        self.assertEqual(self._stock(), 4)

        with self.app.app_context():
            self.assertEqual(db.session.query(InventoryMovement).count(), 1)
            self.assertTrue(stock_ledger_service.stock_consistency(self.product_id)["consistent"])

    def test_concurrent_sales_do_not_oversell(self):
        def sell_six():
            return transaction_service.create_sale_transaction(
                user_id=self.user_id,
                items=[{"product_id": self.product_id, "quantity": 6, "unit_price": 10}],
                total_amount=60,
            ).id

        results = self._run_workers([sell_six, sell_six, sell_six])

        ok = [r for r in results if r[0] == "ok"]
        errors = [r[1] for r in results if r[0] == "error"]
        self.assertEqual(len(ok), 1)
        self.assertTrue(all(isinstance(e, InsufficientStockError) for e in errors))
        self.assertEqual(self._stock(), 4)

        with self.app.app_context():
            self.assertEqual(db.session.query(Transaction).count(), 1)

    def test_many_small_movements_serialize(self):
        def take_one():
            return stock_ledger_service.record_movement(self.product_id, "out", 1).id

        results = self._run_workers([take_one] * 8)

        self.assertTrue(all(kind == "ok" for kind, _ in results), results)
        self.assertEqual(self._stock(), 2)
        with self.app.app_context():
            self.assertEqual(stock_ledger_service.ledger_balance(self.product_id), -8)


class RetryPolicyTests(unittest.TestCase):
    def setUp(self):
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "STOCK_RETRY_ATTEMPTS": 3,
            "STOCK_RETRY_BACKOFF_SECONDS": 0,
        })

    def test_persistent_conflict_becomes_storage_failure(self):
        calls = []

        def always_locked():
            calls.append(1)
            raise OperationalError("UPDATE products", {}, Exception("database is locked"))

        with self.app.app_context():
            with self.assertRaises(StorageFailureError) as ctx:
                run_with_retry(always_locked)

        self.assertEqual(len(calls), 3)
        self.assertEqual(ctx.exception.details["attempts"], 3)
        self.assertEqual(ctx.exception.http_status, 503)

    def test_transient_conflict_is_retried(self):
        outcomes = [OperationalError("UPDATE products", {}, Exception("database is locked")), "done"]

        def flaky():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        with self.app.app_context():
            with mock.patch("stockkeeper.services.concurrency.time.sleep") as sleep:
                self.assertEqual(run_with_retry(flaky), "done")

        sleep.assert_called_once()

    def test_domain_errors_pass_through(self):
        def short():
            raise InsufficientStockError(product_id=1, current_stock=0, requested_delta=-1)

        with self.app.app_context():
            with self.assertRaises(InsufficientStockError):
                run_with_retry(short)


if __name__ == "__main__":
    unittest.main()
