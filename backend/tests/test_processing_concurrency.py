import os
import tempfile
import threading
import unittest
from decimal import Decimal

from grocer import create_app
from grocer.extensions import db
from grocer.models import Order, OrderItem, Product
from grocer.services.status_service import update_order_status


class ProcessingConcurrencyTests(unittest.TestCase):
    """Two simultaneous -> Processing requests must decrement stock once."""

    @classmethod
    def setUpClass(cls):
        fd, cls.db_path = tempfile.mkstemp(suffix=".sqlite3")
        os.close(fd)
        cls.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{cls.db_path}",
            "NOTIFICATION_BACKEND": "disabled",
        })
        with cls.app.app_context():
            db.create_all()

    @classmethod
    def tearDownClass(cls):
        with cls.app.app_context():
            db.session.remove()
            db.drop_all()
            db.engine.dispose()
        os.remove(cls.db_path)

    def setUp(self):
        with self.app.app_context():
            db.session.query(OrderItem).delete()
            db.session.query(Order).delete()
            db.session.query(Product).delete()

            product = Product(name="Cooking Oil 1L", price=Decimal("95.00"), stock=10)
            db.session.add(product)
            db.session.flush()

            order = Order(
                order_code="ORD555001",
                name="Race Test",
                total_price=Decimal("285.00"),
                net_total=Decimal("285.00"),
                device_id="device-a",
            )
            db.session.add(order)
            db.session.flush()

            db.session.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                quantity=3,
                unit_price=Decimal("95.00"),
                total_price=Decimal("285.00"),
                product_name=product.name,
            ))
            db.session.commit()
            self.product_id = product.id
            self.order_id = order.id

    def _run_concurrently(self, workers: int):
        barrier = threading.Barrier(workers)
        results = []
        errors = []

        def worker():
            with self.app.app_context():
                barrier.wait()
                try:
                    results.append(update_order_status(self.order_id, {"status": "Processing"}))
                except Exception as exc:  # noqa: BLE001 - collected for the assertion below
                    errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)
        return results, errors

    def test_two_concurrent_transitions_decrement_once(self):
        results, errors = self._run_concurrently(2)

        self.assertEqual(errors, [])
        self.assertEqual(len(results), 2)
        fired = [r for r in results if r.reconciliation is not None]
        self.assertEqual(len(fired), 1)

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).stock, 7)
            self.assertEqual(db.session.get(Order, self.order_id).status, "Processing")

    def test_many_concurrent_transitions_decrement_once(self):
        results, errors = self._run_concurrently(5)

        self.assertEqual(errors, [])
        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).stock, 7)


if __name__ == "__main__":
    unittest.main()
