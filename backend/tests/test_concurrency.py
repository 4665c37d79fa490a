"""
Concurrency tests against a file-backed SQLite database.

Each worker runs in its own thread with its own app context and session,
the way request threads do.
"""

import os
import tempfile
import threading
import unittest

from tillbook import create_app
from tillbook.config import TestConfig
from tillbook.extensions import db
from tillbook.models import Product, Shift
from tillbook.services import account_service, checkout_service, inventory_service, shift_service
from tillbook.services.balance_service import get_balance
from tillbook.services.shift_service import ShiftAlreadyActiveError


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")

        class FileConfig(TestConfig):
            SQLALCHEMY_DATABASE_URI = f"sqlite:///{db_path}"
            SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}}

        self.app = create_app(FileConfig)

        with self.app.app_context():
            db.drop_all()
            db.create_all()
            account_service.seed_default_accounts()

            product = inventory_service.create_product(
                sku="CONCUR-1", name="Concurrent Product", price_cents=1000, cost_cents=400, stock_quantity=1,
            )
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run(self, worker, args_list):
        results = []
        lock = threading.Lock()

        def target(*args):
            with self.app.app_context():
                try:
                    outcome = worker(*args)
                    with lock:
                        results.append(outcome)
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=target, args=args) for args in args_list]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_one_active_shift_per_cashier(self):
        results = self._run(lambda: shift_service.start_shift("racer", 1000).id, [()] * 5)

        started = [r for r in results if isinstance(r, int)]
        refused = [r for r in results if isinstance(r, ShiftAlreadyActiveError)]
        self.assertEqual(len(started), 1, results)
        self.assertEqual(len(refused), 4, results)

        with self.app.app_context():
            shifts = db.session.query(Shift).filter_by(cashier_id="racer").all()
            self.assertEqual(len(shifts), 1)
            self.assertEqual(get_balance(shifts[0].id).real_time_balance_cents, 1000)

    def test_last_unit_sold_once(self):
        def worker():
            return inventory_service.update_product_stock(self.product_id, -1).success

        results = self._run(worker, [()] * 4)

        self.assertEqual(results.count(True), 1, results)
        self.assertEqual(results.count(False), 3, results)
        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).stock_quantity, 0)

    def test_concurrent_checkouts_keep_till_consistent(self):
        with self.app.app_context():
            shift_id = shift_service.start_shift("till-1", 1000).id

        def worker():
            result = checkout_service.complete_checkout(
                "till-1",
                [{"product_id": self.product_id, "quantity": 1, "unit_price_cents": 1000}],
                "cash",
                cash_received_cents=1200,
            )
            return [w["error_code"] for w in result.warnings]

        results = self._run(worker, [()] * 3)

        errors = [r for r in results if isinstance(r, Exception)]
        self.assertFalse(errors)
        # Every sale stands; only one of them got the last unit
        self.assertEqual(sum(1 for r in results if r == []), 1)

        with self.app.app_context():
            balance = get_balance(shift_id)
            self.assertEqual(balance.total_sales_cents, 3000)
            self.assertEqual(balance.change_given_cents, 600)
            self.assertEqual(balance.real_time_balance_cents, 3400)
            self.assertEqual(db.session.get(Product, self.product_id).stock_quantity, 0)


if __name__ == "__main__":
    unittest.main()
