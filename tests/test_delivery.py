import pytest

import delivery
import sheets

LPO_HEADER = ["LPO ID", "LPO", "DATE", "CUSTOMER", "LPO VALUE", "INVOICE VALUE", "INVOICE DATE",
              "STATUS", "RESHIP", "NOTES"]
ITEMS_HEADER = ["ROW ID", "LPO ID", "ITEM", "STATUS", "VALUE"]


@pytest.fixture
def lpo_book(book):
    return book({
        "Delivery - LPO": [
            LPO_HEADER,
            ["L-001", "4500123", "01/06/2025", "Carrefour", "1,500", "", "", "Pending", "", ""],
            ["", "", "", "", "", "", "", "", "", ""],
            ["L-004", "4500999", "03/06/2025", "Lulu", "800", "780", "05/06/2025", "Delivered", "No", "short 1"],
        ],
        "Delivery - Items": [
            ITEMS_HEADER,
            ["R-001", "L-001", "Chips 50g", "Missing", "0"],
            ["R-002", "L-001", "Cola 1L", "shipped", "120"],
            ["R-003", "L-004", "Water", "CANCELED", "0"],
        ],
        "Delivery - Customers": [["CUSTOMER"], ["Lulu"], ["Carrefour"], [""], ["Lulu"]],
    })


class TestIds:
    def test_next_id_follows_highest(self):
        assert delivery.next_id("L", ["L-001", "L-007", "L-003"]) == "L-008"
        assert delivery.next_id("R", ["L-010", "", "junk"]) == "R-001"
        assert delivery.next_id("R", []) == "R-001"


class TestListing:
    def test_lpos_skip_rows_without_id(self, lpo_book):
        records = delivery.list_lpos()
        assert [r["lpoId"] for r in records] == ["L-001", "L-004"]
        assert records[0]["lpoValue"] == 1500
        assert records[1]["rowIndex"] == 4

    def test_merge_splits_items_by_status(self, lpo_book):
        orders = delivery.merge_orders(delivery.list_lpos(), delivery.list_items())
        first, second = orders
        assert first["missing"] == ["Chips 50g"]
        assert first["shippedItems"] == ["Cola 1L"]
        assert first["canceledItems"] == []
        assert first["lpo"] == "4500123"
        assert second["canceledItems"] == ["Water"]
        assert second["invoiceVal"] == 780
        assert second["_rowIndex"] == 4

    def test_customers_sorted_and_unique(self, lpo_book):
        assert delivery.list_customers() == ["Carrefour", "Lulu"]

    def test_customers_tab_optional(self, book):
        book({})
        assert delivery.list_customers() == []


class TestWrites:
    def test_add_lpo_uses_next_id_and_defaults_status(self, lpo_book):
        lpo_id = delivery.add_lpo({"lpoNumber": "4501000", "lpoDate": "10/06/2025",
                                   "customerName": "Spinneys", "lpoValue": 300})
        assert lpo_id == "L-005"
        row = lpo_book.tabs["Delivery - LPO"].rows[-1]
        assert row[:5] == ["L-005", "4501000", "10/06/2025", "Spinneys", 300]
        assert row[7] == "Pending"

    def test_add_lpo_requires_fields(self, lpo_book):
        with pytest.raises(ValueError):
            delivery.add_lpo({"lpoNumber": "1"})

    def test_add_item(self, lpo_book):
        row_id = delivery.add_item({"lpoId": "L-004", "itemName": "Juice", "status": "missing"})
        assert row_id == "R-004"
        assert lpo_book.tabs["Delivery - Items"].rows[-1] == ["R-004", "L-004", "Juice", "missing", 0]

    def test_update_changes_only_supplied_fields(self, lpo_book):
        delivery.update_lpo(2, {"status": "Delivered", "invoiceValue": 1490, "lpoId": "L-999"})
        row = lpo_book.tabs["Delivery - LPO"].rows[1]
        assert row[0] == "L-001"
        assert row[3] == "Carrefour"
        assert row[5] == 1490
        assert row[7] == "Delivered"

    def test_update_missing_row(self, lpo_book):
        with pytest.raises(sheets.RowNotFound):
            delivery.update_lpo(40, {"status": "Delivered"})

    def test_delete(self, lpo_book):
        delivery.delete_lpo(2)
        assert [r[0] for r in lpo_book.tabs["Delivery - LPO"].rows[1:]] == ["", "L-004"]


class TestDeliveryRoute:
    def test_get(self, client, lpo_book):
        body = client.get("/api/delivery").get_json()
        assert len(body["orders"]) == 2
        assert body["customers"] == ["Carrefour", "Lulu"]

    def test_unknown_action(self, client, lpo_book):
        resp = client.post("/api/delivery", json={"action": "ship"})
        assert resp.status_code == 400

    def test_add_lpo_missing_fields(self, client, lpo_book):
        resp = client.post("/api/delivery", json={"action": "add_lpo", "lpoNumber": "1"})
        assert resp.status_code == 400

    def test_put_requires_row_index(self, client, lpo_book):
        resp = client.put("/api/delivery", json={"status": "Delivered"})
        assert resp.status_code == 400
