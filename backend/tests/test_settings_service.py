import unittest

from storedesk import create_app
from storedesk.config import TestConfig
from storedesk.extensions import db
from storedesk.models import StoreSettings
from storedesk.services import settings_service
from storedesk.services.settings_service import SettingsValidationError, StoreConfig


class SettingsServiceTests(unittest.TestCase):
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
        db.session.query(StoreSettings).delete()
        db.session.commit()

    def test_defaults_created_on_first_load(self):
        self.assertEqual(db.session.query(StoreSettings).count(), 0)

        config = settings_service.load_store_config()

        self.assertIsInstance(config, StoreConfig)
        self.assertEqual(config.tax_rate_bps, 1800)
        self.assertEqual(config.low_stock_threshold, 10)
        self.assertEqual(config.currency_symbol, "₹")
        self.assertEqual(config.invoice_primary_color, "#000000")
        self.assertEqual(db.session.query(StoreSettings).count(), 1)

    def test_load_is_stable(self):
        settings_service.load_store_config()
        settings_service.load_store_config()
        self.assertEqual(db.session.query(StoreSettings).count(), 1)

    def test_config_is_immutable(self):
        config = settings_service.load_store_config()
        with self.assertRaises(Exception):
            config.tax_rate_bps = 0

    def test_update_returns_new_config(self):
        updated = settings_service.update_store_settings({
            "store_name": "Threads & Co",
            "tax_rate_bps": "1200",
            "low_stock_threshold": 5,
            "invoice_secondary_color": "#abc",
            "instagram_page_id": "@threads",
        })

        self.assertEqual(updated.store_name, "Threads & Co")
        self.assertEqual(updated.tax_rate_bps, 1200)
        self.assertEqual(updated.low_stock_threshold, 5)
        self.assertEqual(updated.invoice_secondary_color, "#abc")
        self.assertEqual(settings_service.load_store_config(), updated)

    def test_update_rejects_bad_values(self):
        bad_patches = [
            {"tax_rate_bps": -1},
            {"tax_rate_bps": 10001},
            {"low_stock_threshold": -3},
            {"invoice_primary_color": "blue"},
            {"invoice_primary_color": "#12345"},
            {"store_name": None},
            {"unknown_setting": 1},
        ]
        for patch in bad_patches:
            with self.subTest(patch=patch):
                with self.assertRaises(SettingsValidationError):
                    settings_service.update_store_settings(patch)

        self.assertEqual(settings_service.load_store_config().tax_rate_bps, 1800)

    def test_to_dict_round_trip(self):
        config = settings_service.load_store_config()
        data = config.to_dict()
        self.assertEqual(data["store_name"], config.store_name)
        self.assertEqual(StoreConfig(**data), config)


if __name__ == "__main__":
    unittest.main()
