"""
End-to-end tests of the stock endpoints through the HTTP layer.
"""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def loaded(client: TestClient, pharmacy_headers, today):
    """Two batches of one product: 5 units in 10 days, 10 units in 40 days."""
    batches = []
    for lot, days, quantity in (("A", 10, 5), ("B", 40, 10)):
        response = client.post(
            "/api/batches",
            json={
                "barcode": "7790001",
                "lot_number": lot,
                "expiration_date": (today + timedelta(days=days)).isoformat(),
                "quantity": quantity,
                "name": "Ibuprofeno 400mg",
                "location": "Shelf 3",
            },
            headers=pharmacy_headers,
        )
        assert response.status_code == 201
        batches.append(response.json())
    return batches


class TestProductsAndBatches:

    def test_first_load_creates_product(self, loaded):
        assert loaded[0]["product_created"] is True
        assert loaded[1]["product_created"] is False
        assert loaded[0]["product"]["id"] == loaded[1]["product"]["id"]
        assert loaded[0]["batch"]["status"] == "EXPIRING"
        assert loaded[1]["batch"]["status"] == "VALID"

    def test_unknown_barcode_without_name(self, client, pharmacy_headers, today):
        response = client.post(
            "/api/batches",
            json={
                "barcode": "123",
                "lot_number": "X",
                "expiration_date": (today + timedelta(days=30)).isoformat(),
                "quantity": 1,
            },
            headers=pharmacy_headers,
        )
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_non_positive_quantity(self, client, pharmacy_headers, today):
        response = client.post(
            "/api/batches",
            json={
                "barcode": "123",
                "lot_number": "X",
                "expiration_date": today.isoformat(),
                "quantity": 0,
                "name": "Something",
            },
            headers=pharmacy_headers,
        )
        assert response.status_code == 422

    def test_lookup_by_barcode(self, client, pharmacy_headers, loaded):
        response = client.get("/api/products/by-barcode/7790001", headers=pharmacy_headers)
        assert response.status_code == 200
        assert response.json()["name"] == "Ibuprofeno 400mg"

        missing = client.get("/api/products/by-barcode/000", headers=pharmacy_headers)
        assert missing.status_code == 404

    def test_product_crud(self, client, pharmacy_headers):
        created = client.post(
            "/api/products",
            json={"barcode": "7795", "name": "Loratadina 10mg"},
            headers=pharmacy_headers,
        )
        assert created.status_code == 201
        product_id = created.json()["id"]

        duplicate = client.post(
            "/api/products",
            json={"barcode": "7795", "name": "Again"},
            headers=pharmacy_headers,
        )
        assert duplicate.status_code == 422

        patched = client.patch(
            f"/api/products/{product_id}", json={"brand": "Bayer"}, headers=pharmacy_headers
        )
        assert patched.json()["brand"] == "Bayer"

        listed = client.get("/api/products", params={"search": "lorat"}, headers=pharmacy_headers)
        assert [p["id"] for p in listed.json()] == [product_id]

    def test_batch_edit_and_delete(self, client, pharmacy_headers, loaded):
        batch_id = loaded[0]["batch"]["id"]

        patched = client.patch(
            f"/api/batches/{batch_id}", json={"location": "Fridge"}, headers=pharmacy_headers
        )
        assert patched.json()["location"] == "Fridge"

        assert client.delete(f"/api/batches/{batch_id}", headers=pharmacy_headers).status_code == 204
        assert client.get(f"/api/batches/{batch_id}", headers=pharmacy_headers).status_code == 404

    def test_batches_ordered_by_expiration(self, client, pharmacy_headers, loaded):
        response = client.get("/api/batches", headers=pharmacy_headers)
        assert [b["lot_number"] for b in response.json()] == ["A", "B"]

    def test_other_pharmacy_cannot_see_batches(self, client, db, other_pharmacy, loaded):
        from scanfarma.core.security import create_access_token

        headers = {"Authorization": f"Bearer {create_access_token(subject=str(other_pharmacy.owner_id))}"}
        assert client.get("/api/batches", headers=headers).json() == []
        batch_id = loaded[0]["batch"]["id"]
        assert client.get(f"/api/batches/{batch_id}", headers=headers).status_code == 404


class TestSalesEndpoints:

    def test_fifo_sale(self, client, pharmacy_headers, loaded):
        response = client.post(
            "/api/sales", json={"barcode": "7790001", "quantity": 8}, headers=pharmacy_headers
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert [d["lot_number"] for d in data["deductions"]] == ["A", "B"]

        batches = client.get("/api/products/by-barcode/7790001/batches", headers=pharmacy_headers).json()
        assert [b["quantity_remaining"] for b in batches] == [0, 7]

    def test_shortfall_warning(self, client, pharmacy_headers, loaded):
        data = client.post(
            "/api/sales", json={"barcode": "7790001", "quantity": 20}, headers=pharmacy_headers
        ).json()
        assert data["success"] is True
        assert data["shortfall"] == 5
        assert data["warning"]

    def test_unknown_product(self, client, pharmacy_headers):
        data = client.post(
            "/api/sales", json={"barcode": "000", "quantity": 1}, headers=pharmacy_headers
        ).json()
        assert data["success"] is False
        assert data["error"] == "product_not_found"

    def test_manual_deduction_and_history(self, client, pharmacy_headers, loaded):
        client.post("/api/sales/manual", json={"barcode": "7790001", "quantity": 2}, headers=pharmacy_headers)

        history = client.get("/api/products/by-barcode/7790001/sales", headers=pharmacy_headers).json()
        assert history[0]["source"] == "manual"
        assert history[0]["processed"] is True

    def test_csv_import(self, client, pharmacy_headers, loaded):
        content = b"barcode,quantity,date\n7790001,3,2026-01-15\n9999,1,2026-01-15\n"

        response = client.post(
            "/api/sales/import",
            files={"file": ("ventas.csv", content, "text/csv")},
            headers=pharmacy_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["processed"] == 1
        assert data["errors"] == [{"row_number": 3, "barcode": "9999", "error": "product_not_found"}]

        again = client.post(
            "/api/sales/import",
            files={"file": ("ventas.csv", content, "text/csv")},
            headers=pharmacy_headers,
        )
        assert again.status_code == 409

        imports = client.get("/api/sales/imports", headers=pharmacy_headers).json()["imports"]
        assert imports[0]["status"] == "PARTIAL"

    def test_csv_preview_applies_nothing(self, client, pharmacy_headers, loaded):
        response = client.post(
            "/api/sales/preview-csv",
            files={"file": ("ventas.csv", b"7790001;4;2026-01-15\n", "text/csv")},
            headers=pharmacy_headers,
        )
        assert response.json()["total_rows"] == 1

        batches = client.get("/api/products/by-barcode/7790001/batches", headers=pharmacy_headers).json()
        assert batches[0]["quantity_remaining"] == 5

    def test_rejects_non_csv(self, client, pharmacy_headers):
        response = client.post(
            "/api/sales/import",
            files={"file": ("ventas.xlsx", b"PK...", "application/octet-stream")},
            headers=pharmacy_headers,
        )
        assert response.status_code == 400


class TestWasteEndpoints:

    def test_record_and_summary(self, client, pharmacy_headers, loaded):
        batch = loaded[0]["batch"]
        response = client.post(
            "/api/waste",
            json={"batch_id": batch["id"], "quantity": 2, "reason": "damaged"},
            headers=pharmacy_headers,
        )
        assert response.status_code == 201

        waste = client.get(f"/api/products/{batch['product_id']}/waste", headers=pharmacy_headers).json()
        assert waste["summary"]["by_reason"]["damaged"] == 2
        assert len(waste["history"]) == 1

    def test_insufficient_stock_conflict(self, client, pharmacy_headers, loaded):
        batch = loaded[0]["batch"]
        response = client.post(
            "/api/waste",
            json={"batch_id": batch["id"], "quantity": 6, "reason": "expired"},
            headers=pharmacy_headers,
        )
        assert response.status_code == 409
        assert response.json()["message"] == "Insufficient stock. Available: 5"

    def test_expire_and_bulk(self, client, pharmacy_headers, loaded):
        first, second = (entry["batch"]["id"] for entry in loaded)

        expired = client.post(f"/api/waste/batches/{first}/expire", headers=pharmacy_headers).json()
        assert expired["quantity"] == 5

        result = client.post(
            "/api/waste/bulk-expire", json={"batch_ids": [first, second]}, headers=pharmacy_headers
        ).json()
        assert result == {"processed": 2, "units": 10, "errors": []}


class TestIntelligenceEndpoints:

    def test_dashboard(self, client, pharmacy_headers, loaded):
        data = client.get("/api/intelligence/dashboard", headers=pharmacy_headers).json()

        assert data["stats"]["totalProducts"] == 1
        assert data["stats"]["unitsExpiring20d"] == 5
        assert data["top_risk"][0]["units_expiring"] == 5

    def test_product_metrics_with_suggestions(self, client, pharmacy_headers, loaded):
        product_id = loaded[0]["product"]["id"]
        data = client.get(f"/api/products/{product_id}/metrics", headers=pharmacy_headers).json()

        assert data["metrics"]["unitsExpiring"] == 5
        assert [s["type"] for s in data["suggestions"]] == ["prioritize_sale"]

    def test_listing_endpoints(self, client, pharmacy_headers, loaded):
        for path, key in (
            ("/api/intelligence/fleet", "products"),
            ("/api/intelligence/high-risk", "products"),
            ("/api/intelligence/suggestions", "suggestions"),
            ("/api/intelligence/products", "products"),
            ("/api/intelligence/top-waste", "products"),
            ("/api/intelligence/top-risk", "products"),
            ("/api/intelligence/trends", "months"),
        ):
            response = client.get(path, headers=pharmacy_headers)
            assert response.status_code == 200, path
            assert key in response.json()

    def test_alerts(self, client, pharmacy_headers, loaded):
        data = client.get("/api/alerts", headers=pharmacy_headers).json()
        assert data["count"] == 1
        assert data["alerts"][0]["lot_number"] == "A"

        wider = client.get("/api/alerts", params={"threshold_days": 60}, headers=pharmacy_headers).json()
        assert wider["count"] == 2

        assert client.get("/api/alerts/count", headers=pharmacy_headers).json() == {"count": 1}

    def test_alert_threshold_bounds(self, client, pharmacy_headers):
        response = client.get("/api/alerts", params={"threshold_days": 120}, headers=pharmacy_headers)
        assert response.status_code == 422

    def test_digest_respects_toggle(self, client, pharmacy_headers, loaded):
        digest = client.get("/api/alerts/digest", headers=pharmacy_headers).json()
        assert digest["enabled"] is True
        assert digest["products"][0]["units_expiring"] == 5

        client.put("/api/settings/notifications", json={"enabled": False}, headers=pharmacy_headers)
        assert client.get("/api/alerts/digest", headers=pharmacy_headers).json() == {
            "enabled": False, "products": [],
        }


class TestSettingsAndCapture:

    def test_rule_update(self, client, pharmacy_headers, loaded):
        response = client.put(
            "/api/settings/notification-rules/expiring_soon",
            json={"threshold": 60},
            headers=pharmacy_headers,
        )
        assert response.status_code == 200
        assert response.json()["threshold"] == 60.0

        assert client.get("/api/alerts/count", headers=pharmacy_headers).json() == {"count": 2}

    def test_rule_out_of_range(self, client, pharmacy_headers):
        response = client.put(
            "/api/settings/notification-rules/EXPIRING_SOON",
            json={"threshold": 3},
            headers=pharmacy_headers,
        )
        assert response.status_code == 422
        assert response.json()["field"] == "threshold"

    @pytest.mark.parametrize("text,expected", [
        ("VENC 03/2027", "2027-03-01"),
        ("garbage", None),
    ])
    def test_capture(self, client, pharmacy_headers, text, expected):
        data = client.post(
            "/api/capture/expiry-date", json={"text": text}, headers=pharmacy_headers
        ).json()
        assert data["expiration_date"] == expected
        assert data["valid"] is (expected is not None)
