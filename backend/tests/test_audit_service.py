import unittest

from stockbook import create_app
from stockbook.config import TestConfig
from stockbook.extensions import db
from stockbook.models import AuditLog, Product, StockTransaction, User
from stockbook.services import audit_service, stock_service
from stockbook.services.errors import InsufficientStockError


class AuditServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app(TestConfig)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(AuditLog).delete()
        db.session.query(StockTransaction).delete()
        db.session.query(Product).delete()
        db.session.query(User).delete()
        db.session.commit()

        self.user = User(username="auditor", email="auditor@test.local", password_hash="x", role="admin")
        self.product = Product(
            sku="AUD-001",
            name="Audited",
            unit="pcs",
            base_price_cents=100,
            selling_price_cents=150,
        )
        db.session.add_all([self.user, self.product])
        db.session.commit()

    def test_entry_is_rolled_back_with_its_change(self):
        audit_service.log_audit(action="stock.in", user_id=self.user.id, target_type="product", target_id=1)
        db.session.rollback()
        self.assertEqual(db.session.query(AuditLog).count(), 0)

    def test_failed_movement_leaves_no_entry(self):
        with self.assertRaises(InsufficientStockError):
            stock_service.record_movement(self.product.id, "out", 1, user_id=self.user.id)
        self.assertEqual(db.session.query(AuditLog).count(), 0)

    def test_request_context_fills_client_info(self):
        with self.app.test_request_context(
            "/", headers={"User-Agent": "pytest-agent"}, environ_base={"REMOTE_ADDR": "10.0.0.7"}
        ):
            entry = audit_service.log_audit(action="user.ban", target_type="user", target_id=self.user.id)
            self.assertEqual(entry.ip_address, "10.0.0.7")
            self.assertEqual(entry.user_agent, "pytest-agent")
            self.assertEqual(entry.target_id, str(self.user.id))
            db.session.rollback()

    def test_get_audit_logs_filters_and_pages(self):
        for i in range(5):
            stock_service.record_movement(self.product.id, "in", i + 1, user_id=self.user.id)
        stock_service.correct_stock(self.product.id, 0, user_id=self.user.id)

        page = audit_service.get_audit_logs(limit=2, action="stock.in")
        self.assertEqual(page["total"], 5)
        self.assertEqual(len(page["items"]), 2)
        self.assertEqual(page["items"][0]["after"]["current_stock"], 15)
        self.assertEqual(page["items"][0]["username"], "auditor")

        corrections = audit_service.get_audit_logs(target_type="product", action="stock.correct")
        self.assertEqual(corrections["total"], 1)
        self.assertEqual(corrections["items"][0]["before"], {"current_stock": 15})

    def test_limit_is_clamped(self):
        page = audit_service.get_audit_logs(limit=10_000, offset=-3)
        self.assertEqual(page["limit"], audit_service.MAX_PAGE_SIZE)
        self.assertEqual(page["offset"], 0)


if __name__ == "__main__":
    unittest.main()
