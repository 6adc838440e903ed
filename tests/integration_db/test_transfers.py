import unittest
from unittest.mock import patch

from sqlalchemy.exc import SQLAlchemyError

from core.config import settings
from models.catalog import CatalogItem
from models.transfer import TransferItem
from queries.invoices import replace_invoice_items, upsert_invoice
from queries.partners import create_warehouse
from queries.settings import DEFAULT_TRANSFER_WAREHOUSE_KEY, set_setting
from queries.transfers import list_transfers_by_invoice
from services.reconciler import number_lines
from services.transfers import default_transfer_warehouse, materialize
from tests._support import SqliteDB, line


class TestMaterializeTransfer(unittest.TestCase):
    def setUp(self):
        self.sqlite = SqliteDB()
        self.db = self.sqlite.SessionLocal()
        self.source = create_warehouse(self.db, name="Ararat Cement LLC", address="Ararat").id

    def tearDown(self):
        self.db.close()
        self.sqlite.close()

    def _invoice(self, invoice_id: str, lines: list[dict]) -> None:
        upsert_invoice(self.db, invoice_id=invoice_id, fields={"supplier_tin": "111", "buyer_tin": "999"})
        replace_invoice_items(self.db, invoice_id, number_lines(lines))

    def test_transfer_with_all_lines(self):
        self._invoice("INV-1", [line(1, "Cement", qty=2, price=50, vat=20), line(2, "Sand", qty=3, price=7)])

        res = materialize(self.db, "INV-1", self.source)

        self.assertIsNotNone(res.transfer_id)
        self.assertEqual(res.errors, [])
        transfers = list_transfers_by_invoice(self.db, "INV-1")
        self.assertEqual(len(transfers), 1)
        self.assertEqual(transfers[0].from_warehouse_id, self.source)

        rows = self.db.query(TransferItem).order_by(TransferItem.id).all()
        self.assertEqual([(r.qty, r.unit_price, r.unit_vat) for r in rows], [(2, 50, 10), (3, 7, 0)])
        # unmatched names were added to the catalog
        self.assertEqual(sorted(i.code for i in self.db.query(CatalogItem)), ["CEM001", "SAN001"])

    def test_failed_lines_remove_transfer_header(self):
        self._invoice("INV-1", [line(1, "Cement"), line(2, "Sand")])

        with patch("services.transfers.add_transfer_items", side_effect=SQLAlchemyError("disk full")):
            res = materialize(self.db, "INV-1", self.source)

        self.assertIsNone(res.transfer_id)
        self.assertTrue(any("Failed to create transfer items" in e for e in res.errors))
        self.assertEqual(list_transfers_by_invoice(self.db, "INV-1"), [])
        self.assertEqual(self.db.query(TransferItem).count(), 0)

    def test_no_linked_lines_means_no_transfer(self):
        self._invoice("INV-1", [line(1, None)])

        res = materialize(self.db, "INV-1", self.source)

        self.assertIsNone(res.transfer_id)
        self.assertIn("No items with valid item_id found", res.errors)
        self.assertEqual(list_transfers_by_invoice(self.db, "INV-1"), [])

    # -------------------------
    # destination warehouse
    # -------------------------

    def test_destination_falls_back_when_unset(self):
        self._invoice("INV-1", [line(1, "Cement")])

        res = materialize(self.db, "INV-1", self.source)

        transfer = list_transfers_by_invoice(self.db, "INV-1")[0]
        self.assertEqual(transfer.id, res.transfer_id)
        self.assertEqual(transfer.to_warehouse_id, settings.DEFAULT_TRANSFER_WAREHOUSE_ID)

    def test_destination_from_setting(self):
        set_setting(self.db, DEFAULT_TRANSFER_WAREHOUSE_KEY, 7)
        self._invoice("INV-1", [line(1, "Cement")])

        materialize(self.db, "INV-1", self.source)

        self.assertEqual(list_transfers_by_invoice(self.db, "INV-1")[0].to_warehouse_id, 7)

    def test_invalid_setting_uses_fallback(self):
        set_setting(self.db, DEFAULT_TRANSFER_WAREHOUSE_KEY, "main")

        self.assertEqual(default_transfer_warehouse(self.db), settings.DEFAULT_TRANSFER_WAREHOUSE_ID)


if __name__ == "__main__":
    unittest.main()
