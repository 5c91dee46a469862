# Overview: Threaded ledger tests against a file-backed SQLite database.

"""
Concurrency tests for the sale and return ledger.

Each thread gets its own app context and pool connection, so writers
really contend for the database lock.
"""
import os
import tempfile
import threading
import unittest
from datetime import date
from decimal import Decimal

from shopledger import create_app
from shopledger.extensions import db, database
from shopledger.line_items import money
from shopledger.models import InventoryItem
from shopledger.services import return_service, sales_service
from shopledger.services.return_service import DuplicateReturn
from shopledger.services.sales_service import InsufficientStock


def _sale_payload(item_id, quantity):
    return {
        "date": "2026-01-15",
        "customerId": 0,
        "customerName": "Walk-in Customer",
        "sellerId": 1,
        "sellerName": "Dana",
        "items": [{"itemId": item_id, "quantity": quantity, "price": 150}],
        "paymentMethod": "cash",
        "status": "completed",
    }


def _return_payload(invoice_number, invoice_id):
    return {
        "invoiceNumber": invoice_number,
        "invoiceId": invoice_id,
        "date": "2026-01-20",
        "customerName": "Walk-in Customer",
        "amount": 150,
        "reason": "Damaged",
        "items": [{"sku": "CONCUR-1", "name": "Concurrent Widget", "quantity": 1, "price": 150}],
    }


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
            "DB_RETRY_BACKOFF_SECONDS": 0.01,
            "DB_HEALTH_CHECK_INTERVAL": 0,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            item = InventoryItem(
                sku="CONCUR-1",
                name="Concurrent Widget",
                category="Tools",
                quantity=10,
                cost_price=100,
                price=150,
                reorder_level=2,
                supplier="TechParts Inc",
                last_restock=date(2026, 1, 1),
            )
            db.session.add(item)
            db.session.commit()
            self.item_id = item.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, target, count):
        threads = [threading.Thread(target=target) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    def test_concurrent_sales_never_oversell(self):
        created = []
        rejected = []
        errors = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    result = sales_service.create_sale(_sale_payload(self.item_id, 2))
                    with lock:
                        created.append(result.invoice_number)
                except InsufficientStock as exc:
                    with lock:
                        rejected.append(exc)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        self._run_threads(worker, 8)

        self.assertFalse(errors)
        self.assertEqual(len(created), 5)
        self.assertEqual(len(rejected), 3)
        self.assertEqual(len(created), len(set(created)))

        with self.app.app_context():
            row = database.get("SELECT quantity FROM inventory WHERE id = ?", [self.item_id])
            self.assertEqual(row["quantity"], 0)
            count = database.get("SELECT COUNT(*) AS n FROM sales")["n"]
            self.assertEqual(count, 5)

    def test_concurrent_return_creation_allows_one(self):
        with self.app.app_context():
            sale = sales_service.create_sale(_sale_payload(self.item_id, 3))

        created = []
        duplicates = []
        errors = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    return_id = return_service.create_return(_return_payload(sale.invoice_number, sale.id))
                    with lock:
                        created.append(return_id)
                except DuplicateReturn as exc:
                    with lock:
                        duplicates.append(exc)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        self._run_threads(worker, 6)

        self.assertFalse(errors)
        self.assertEqual(len(created), 1)
        self.assertEqual(len(duplicates), 5)

    def test_concurrent_approvals_reverse_once(self):
        with self.app.app_context():
            sale = sales_service.create_sale(_sale_payload(self.item_id, 3))
            return_id = return_service.create_return(_return_payload(sale.invoice_number, sale.id))

        errors = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    return_service.update_return_status(return_id, {"status": "approved"})
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        self._run_threads(worker, 6)

        self.assertFalse(errors)
        with self.app.app_context():
            row = database.get("SELECT total, total_cost, profit, status FROM sales WHERE id = ?", [sale.id])
            self.assertEqual(money(row["total"]), Decimal("300.00"))
            self.assertEqual(money(row["total_cost"]), Decimal("200.00"))
            self.assertEqual(money(row["profit"]), Decimal("100.00"))
            self.assertEqual(row["status"], "returned")


if __name__ == "__main__":
    unittest.main()
