from datetime import datetime

import pytest

import chipsy


def product(barcode, qty, pcs_in_ctn=10, price=2.5, name=None):
    return {"rowIndex": 2, "barcode": barcode, "productName": name or f"Product {barcode}",
            "qtyPcs": qty, "pcsInCtn": pcs_in_ctn, "price": price}


def transfer(loc_from, loc_to, barcode, qty, customer="", description="", number=""):
    return {"user": "sam", "number": number, "date": "", "locFrom": loc_from, "locTo": loc_to,
            "customerName": customer, "receiverName": "", "barcode": barcode, "productName": "",
            "qtyPcs": qty, "price": 0, "total": 0, "description": description}


def qty_of(stock, barcode):
    return next(p["qtyPcs"] for p in stock if p["barcode"] == barcode)


class TestParsing:
    def test_empty_locations_read_as_main(self):
        t = chipsy.parse_transfer(["sam", "TRX-0001", "", "", "", "", "", "111", "Chips", "5"])
        assert t["locFrom"] == "MAIN"
        assert t["locTo"] == "MAIN"
        assert t["qtyPcs"] == 5
        assert t["description"] == ""

    def test_product_defaults_pcs_in_ctn_to_one(self):
        p = chipsy.parse_product(3, ["111", "Chips", "1,200", "", ""])
        assert p["qtyPcs"] == 1200
        assert p["pcsInCtn"] == 1
        assert p["price"] == 0.0
        assert p["rowIndex"] == 3


class TestReplayStock:
    def test_inbound_and_outbound_adjust_main(self):
        stock, summary = chipsy.replay_stock(
            [product("111", 100)],
            [transfer("Supplier", "MAIN", "111", 20), transfer("Main Inventory", "Ahmed", "111", 30)],
        )
        assert qty_of(stock, "111") == 90
        assert summary["applied"] == 2

    def test_main_location_is_case_insensitive(self):
        stock, _ = chipsy.replay_stock([product("111", 10)], [transfer("Ahmed", "main inventory", "111", 4)])
        assert qty_of(stock, "111") == 14

    def test_person_to_customer_fills_buffer_without_touching_main(self):
        stock, summary = chipsy.replay_stock(
            [product("111", 100)],
            [transfer("Ahmed", "Customer", "111", 10, customer="Shop X")],
        )
        assert qty_of(stock, "111") == 100
        assert summary["buffer"] == {"111": 10}

    def test_customer_detected_by_customer_name(self):
        _, summary = chipsy.replay_stock(
            [product("111", 100)],
            [transfer("Ahmed", "Shop X", "111", 7, customer="Shop X")],
        )
        assert summary["buffer"] == {"111": 7}

    def test_reconciliation_nets_against_buffer(self):
        stock, summary = chipsy.replay_stock(
            [product("111", 100)],
            [
                transfer("MAIN", "Ahmed", "111", 30),
                transfer("Ahmed", "Customer", "111", 10, customer="Shop X"),
                transfer("MAIN", "Customer", "111", 25, description="Invoice Reconciliation - Jan"),
            ],
        )
        # 100 - 30 - (25 - 10)
        assert qty_of(stock, "111") == 55
        assert summary["reconciledOffset"] == 10
        assert summary["buffer"] == {}

    def test_reconciliation_smaller_than_buffer_leaves_remainder(self):
        stock, summary = chipsy.replay_stock(
            [product("111", 100)],
            [
                transfer("Ahmed", "Customer", "111", 10, customer="Shop X"),
                transfer("MAIN", "Customer", "111", 4, description="INVOICE RECONCILIATION"),
            ],
        )
        assert qty_of(stock, "111") == 100
        assert summary["buffer"] == {"111": 6}

    def test_plain_outbound_ignores_buffer(self):
        stock, summary = chipsy.replay_stock(
            [product("111", 100)],
            [
                transfer("Ahmed", "Customer", "111", 10, customer="Shop X"),
                transfer("MAIN", "Customer", "111", 10, description="walk-in sale"),
            ],
        )
        assert qty_of(stock, "111") == 90
        assert summary["buffer"] == {"111": 10}

    def test_reconciliation_before_any_sale_deducts_in_full(self):
        stock, _ = chipsy.replay_stock(
            [product("111", 100)],
            [
                transfer("MAIN", "Customer", "111", 10, description="invoice reconciliation"),
                transfer("Ahmed", "Customer", "111", 10, customer="Shop X"),
            ],
        )
        assert qty_of(stock, "111") == 90

    def test_legacy_rows(self):
        stock, _ = chipsy.replay_stock(
            [product("111", 50)],
            [transfer("OUT", "Ali", "111", 5), transfer("IN", "Ali", "111", 2)],
        )
        assert qty_of(stock, "111") == 47

    def test_person_to_person_changes_nothing(self):
        stock, summary = chipsy.replay_stock([product("111", 50)], [transfer("Ahmed", "Ali", "111", 5)])
        assert qty_of(stock, "111") == 50
        assert summary["buffer"] == {}

    def test_unknown_barcode_is_skipped(self):
        stock, summary = chipsy.replay_stock([product("111", 50)], [transfer("MAIN", "Ahmed", "999", 5)])
        assert qty_of(stock, "111") == 50
        assert summary["skipped"] == 1
        assert summary["applied"] == 0

    def test_keeps_product_order_and_does_not_mutate_input(self):
        products = [product("222", 5), product("111", 7)]
        stock, _ = chipsy.replay_stock(products, [transfer("MAIN", "Ahmed", "111", 2)])
        assert [p["barcode"] for p in stock] == ["222", "111"]
        assert products[1]["qtyPcs"] == 7


class TestPeopleHoldings:
    def test_net_holdings_per_person(self):
        products = [product("111", 0, pcs_in_ctn=10), product("222", 0, pcs_in_ctn=12)]
        transfers = [
            transfer("MAIN", "Ahmed", "111", 30),
            transfer("Ahmed", "Customer", "111", 10, customer="Shop X"),
            transfer("Ahmed", "Ali", "111", 5),
            transfer("OUT", "Ali", "222", 24),
            transfer("IN", "Ali", "222", 12),
        ]
        people = chipsy.people_holdings(transfers, products)

        # sorted by pieces held
        assert [p["name"] for p in people] == ["Ali", "Ahmed"]
        ali, ahmed = people
        assert ahmed["products"] == {"111": 15}
        assert ahmed["totalCtns"] == 1.5
        assert ali["products"] == {"111": 5, "222": 12}
        assert ali["totalPcs"] == 17
        assert ali["totalCtns"] == 1.5

    def test_people_with_nothing_are_hidden(self):
        transfers = [transfer("MAIN", "Ahmed", "111", 5), transfer("Ahmed", "MAIN", "111", 5)]
        assert chipsy.people_holdings(transfers, [product("111", 0)]) == []


class TestTransactions:
    def test_next_number_per_prefix(self):
        transfers = [transfer("MAIN", "A", "1", 1, number=n) for n in ("TRX-0009", "TRX-0010", "ABC-0100", "")]
        assert chipsy.next_transaction_number(transfers) == "TRX-0011"
        assert chipsy.next_transaction_number(transfers, "ABC") == "ABC-0101"
        assert chipsy.next_transaction_number([], "TRX") == "TRX-0001"

    def test_build_transaction_converts_cartons(self):
        products = [product("111", 100, pcs_in_ctn=10, price=2.5), product("222", 50, pcs_in_ctn=12, price=3)]
        number, rows = chipsy.build_transaction(
            {"locFrom": "MAIN", "locTo": "Ahmed", "user": "sam"},
            [{"barcode": "111", "qty": 2, "unit": "CTN"}, {"barcode": "222", "qty": 5}, {"barcode": "222", "qty": 0}],
            products, [], now=datetime(2025, 1, 5, 14, 30),
        )
        assert number == "TRX-0001"
        assert [r["qtyPcs"] for r in rows] == [20, 5]
        assert rows[0]["total"] == 50.0
        assert rows[0]["date"] == "01/05/2025, 02:30:00 PM"
        assert {r["number"] for r in rows} == {"TRX-0001"}

    def test_legacy_type_maps_to_locations(self):
        assert chipsy.resolve_locations({"type": "OUT", "personName": "Ahmed"}) == ("Main Inventory", "Ahmed")
        assert chipsy.resolve_locations({"type": "in", "personName": "Ahmed"}) == ("Ahmed", "Main Inventory")
        with pytest.raises(ValueError):
            chipsy.resolve_locations({})

    def test_unknown_barcode_raises_lookup_error(self):
        with pytest.raises(chipsy.ProductNotFound):
            chipsy.build_transaction({"locFrom": "MAIN", "locTo": "Ahmed"}, [{"barcode": "999", "qty": 1}],
                                     [product("111", 1)], [])

    def test_no_valid_items_and_same_locations_rejected(self):
        with pytest.raises(ValueError):
            chipsy.build_transaction({"locFrom": "MAIN", "locTo": "Ahmed"}, [{"barcode": "111", "qty": 0}],
                                     [product("111", 1)], [])
        with pytest.raises(ValueError):
            chipsy.build_transaction({"locFrom": "main", "locTo": "MAIN"}, [{"barcode": "111", "qty": 1}],
                                     [product("111", 1)], [])


class TestChipsyRoutes:
    def test_post_transaction_appends_rows_and_replays(self, client, chipsy_book):
        resp = client.post("/api/chipsy/transaction", json={
            "locFrom": "Ahmed", "locTo": "MAIN", "user": "sam",
            "items": [{"barcode": "111", "qty": 1, "unit": "CTN"}],
        })
        assert resp.status_code == 200
        assert resp.get_json()["number"] == "TRX-0002"

        rows = chipsy_book.tabs["TRANSFERS - Chipsy"].rows
        assert len(rows) == 3
        assert rows[-1][3:5] == ["Ahmed", "MAIN"]
        # opening quantity is never rewritten
        assert chipsy_book.tabs["Inventory - Chipsy"].rows[1][2] == "100"

        body = client.get("/api/chipsy").get_json()
        assert qty_of(body["products"], "111") == 80
        assert body["people"][0]["products"] == {"111": 20}

    def test_post_nested_legacy_transaction(self, client, chipsy_book):
        resp = client.post("/api/chipsy/transaction", json={
            "transaction": {"type": "OUT", "user": "sam", "personName": "Ahmed",
                            "customerName": "", "description": ""},
            "items": [{"barcode": "111", "qty": 1, "unit": "CTN"}],
        })
        assert resp.status_code == 200
        assert resp.get_json()["transactionNumber"] == "TRX-0002"

        row = chipsy_book.tabs["TRANSFERS - Chipsy"].rows[-1]
        assert row[0] == "sam"
        assert row[3:5] == ["Main Inventory", "Ahmed"]
        assert row[9] == 10

        body = client.get("/api/chipsy").get_json()
        assert qty_of(body["products"], "111") == 60
        assert body["people"][0]["products"] == {"111": 40}

    def test_post_transaction_unknown_barcode_is_404(self, client, chipsy_book):
        resp = client.post("/api/chipsy/transaction", json={
            "locFrom": "MAIN", "locTo": "Ahmed", "items": [{"barcode": "999", "qty": 1}],
        })
        assert resp.status_code == 404

    def test_post_transaction_without_items_is_400(self, client, chipsy_book):
        resp = client.post("/api/chipsy/transaction", json={"locFrom": "MAIN", "locTo": "Ahmed", "items": []})
        assert resp.status_code == 400

    def test_transfers_newest_first_and_filtered(self, client, chipsy_book):
        chipsy_book.tabs["TRANSFERS - Chipsy"].rows.append(
            ["sam", "TRX-0002", "", "MAIN", "Ali", "", "", "222", "Chips Chili", "12", "3", "36", ""])
        transfers = client.get("/api/chipsy/transfers").get_json()["transfers"]
        assert [t["number"] for t in transfers] == ["TRX-0002", "TRX-0001"]

        only = client.get("/api/chipsy/transfers?number=TRX-0001").get_json()["transfers"]
        assert len(only) == 1 and only[0]["locTo"] == "Ahmed"

    def test_export_is_xlsx(self, client, chipsy_book):
        resp = client.get("/api/chipsy/export")
        assert resp.status_code == 200
        assert resp.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        assert resp.data[:2] == b"PK"
