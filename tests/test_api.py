"""Tests for the HTTP boundary: status codes and structured error payloads."""
from lesson_booking.reconciler import Reconciler

PHONE = "+44 7700 900789"


def _create(client, cart, name="Ann", phone=PHONE):
    return client.post("/api/orders", json={"name": name, "phone": phone, "cartItems": cart})


class TestLessonsEndpoint:
    def test_list_lessons(self, client):
        resp = client.get("/api/lessons")

        assert resp.status_code == 200
        body = resp.json()
        assert [l["id"] for l in body] == ["SN01", "SN02", "SN03"]
        assert body[0]["price"] == 10
        assert body[0]["space"] == 5

    def test_index_lists_routes(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert "/api/lessons" in resp.text

    def test_unknown_route(self, client):
        resp = client.get("/api/nothing-here")

        assert resp.status_code == 404
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == "Route /api/nothing-here not found"
        assert "timestamp" in body


class TestCreateOrderEndpoint:
    def test_created(self, client):
        resp = _create(client, [{"id": "SN01", "count": 2}, {"id": "SN02", "count": 1}])

        assert resp.status_code == 201
        body = resp.json()
        assert body["message"] == "Order created successfully"
        assert body["orderId"] == body["order"]["id"]
        assert body["order"]["status"] == "pending"
        assert body["order"]["total"] == 45.5

    def test_timestamps_read_back_unchanged(self, client):
        created = _create(client, [{"id": "SN01", "count": 1}]).json()["order"]

        stored = client.get(f"/api/orders/{created['id']}").json()

        assert stored["createdAt"] == created["createdAt"]
        assert stored["updatedAt"] == created["updatedAt"]
        assert stored["createdAt"].endswith("+00:00")

    def test_lesson_timestamps_carry_utc_offset(self, client):
        lesson = client.get("/api/lessons").json()[0]
        assert lesson["updatedAt"] == "2020-01-01T12:00:00+00:00"

    def test_missing_fields(self, client):
        resp = client.post("/api/orders", json={"phone": PHONE, "cartItems": [{"id": "SN01", "count": 1}]})

        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "validation_error"
        assert any(d["field"] == "name" for d in body["details"])

    def test_count_below_one(self, client):
        resp = _create(client, [{"id": "SN01", "count": 0}])
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"

    def test_bad_phone(self, client):
        resp = _create(client, [{"id": "SN01", "count": 1}], phone="call me")

        assert resp.status_code == 400
        assert resp.json() == {"error": "validation_error", "message": "Valid phone number is required", "field": "phone"}

    def test_unknown_lesson(self, client):
        resp = _create(client, [{"id": "NOPE", "count": 1}])

        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"
        assert "NOPE" in resp.json()["message"]

    def test_insufficient_capacity(self, client):
        resp = _create(client, [{"id": "SN02", "count": 9}])

        assert resp.status_code == 400
        assert resp.json() == {
            "error": "insufficient_capacity",
            "message": "Not enough space for lesson SN02. Available: 3, Requested: 9",
            "lessonId": "SN02",
            "available": 3,
            "requested": 9,
        }


class TestReduceSpaces:
    def test_confirm(self, client):
        order_id = _create(client, [{"id": "SN01", "count": 2}]).json()["orderId"]

        resp = client.put(
            "/api/lessons/update",
            json={"action": "reduce-spaces", "orderId": order_id, "cartItems": [{"id": "SN01", "count": 2}]},
        )

        assert resp.status_code == 200
        assert resp.json() == {
            "message": "Lesson spaces reduced successfully and order confirmed",
            "orderId": order_id,
            "updatedLessons": [{"id": "SN01", "reducedBy": 2}],
            "status": "confirmed",
        }
        assert client.get(f"/api/orders/{order_id}").json()["status"] == "confirmed"
        assert client.get("/api/lessons").json()[0]["space"] == 3

    def test_confirm_uses_stored_cart(self, client):
        order_id = _create(client, [{"id": "SN02", "count": 3}]).json()["orderId"]

        resp = client.put("/api/lessons/update", json={"action": "reduce-spaces", "orderId": order_id})

        assert resp.status_code == 200
        assert resp.json()["updatedLessons"] == [{"id": "SN02", "reducedBy": 3}]

    def test_cart_other_than_the_order_is_rejected(self, client):
        order_id = _create(client, [{"id": "SN01", "count": 1}]).json()["orderId"]

        resp = client.put(
            "/api/lessons/update",
            json={"action": "reduce-spaces", "orderId": order_id, "cartItems": [{"id": "SN02", "count": 3}]},
        )

        assert resp.status_code == 400
        assert resp.json()["field"] == "cartItems"
        assert client.get(f"/api/orders/{order_id}").json()["status"] == "pending"
        assert [l["space"] for l in client.get("/api/lessons").json()] == [5, 3, 0]

    def test_already_processed(self, client):
        order_id = _create(client, [{"id": "SN01", "count": 1}]).json()["orderId"]
        client.put("/api/lessons/update", json={"action": "reduce-spaces", "orderId": order_id})

        resp = client.put("/api/lessons/update", json={"action": "reduce-spaces", "orderId": order_id})

        assert resp.status_code == 400
        assert resp.json()["error"] == "already_processed"
        assert client.get("/api/lessons").json()[0]["space"] == 4

    def test_unknown_order(self, client):
        resp = client.put(
            "/api/lessons/update",
            json={"action": "reduce-spaces", "orderId": "64a1b2c3d4e5f6789abcdef0", "cartItems": [{"id": "SN01", "count": 1}]},
        )

        assert resp.status_code == 404
        assert resp.json()["error"] == "order_not_found"

    def test_missing_order_id(self, client):
        resp = client.put("/api/lessons/update", json={"action": "reduce-spaces"})

        assert resp.status_code == 400
        assert resp.json()["field"] == "orderId"

    def test_empty_cart(self, client):
        order_id = _create(client, [{"id": "SN01", "count": 1}]).json()["orderId"]

        resp = client.put("/api/lessons/update", json={"action": "reduce-spaces", "orderId": order_id, "cartItems": []})

        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"

    def test_invalid_action(self, client):
        resp = client.put("/api/lessons/update", json={"action": "delete-everything"})
        assert resp.status_code == 400


class TestUpdateFields:
    def test_update(self, client):
        resp = client.put(
            "/api/lessons/update",
            json={"action": "update-fields", "updates": [{"id": "SN01", "changes": {"price": 35.99, "description": "New"}}]},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["updatedCount"] == 1
        assert body["status"] == "success"
        assert body["updatedLessons"][0]["id"] == "SN01"

        lesson = client.get("/api/lessons").json()[0]
        assert lesson["price"] == 35.99
        assert lesson["description"] == "New"

    def test_missing_ids_listed_and_nothing_applied(self, client):
        resp = client.put(
            "/api/lessons/update",
            json={
                "action": "update-fields",
                "updates": [{"id": "SN01", "changes": {"subject": "Algebra"}}, {"id": "GONE", "changes": {"subject": "X"}}],
            },
        )

        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "not_found"
        assert body["missingIds"] == ["GONE"]
        assert client.get("/api/lessons").json()[0]["subject"] == "Math"

    def test_updates_required(self, client):
        resp = client.put("/api/lessons/update", json={"action": "update-fields"})

        assert resp.status_code == 400
        assert resp.json()["field"] == "updates"

    def test_space_cannot_be_patched(self, client):
        resp = client.put(
            "/api/lessons/update",
            json={"action": "update-fields", "updates": [{"id": "SN01", "changes": {"space": 500}}]},
        )

        assert resp.status_code == 400
        assert client.get("/api/lessons").json()[0]["space"] == 5


def test_unexpected_errors_are_not_leaked(client, monkeypatch):
    def broken(self):
        raise RuntimeError("sqlite3.OperationalError: disk I/O error at /var/db/file")

    monkeypatch.setattr(Reconciler, "list_lessons", broken)

    resp = client.get("/api/lessons")

    assert resp.status_code == 500
    assert resp.json() == {"error": "internal_error", "message": "An unexpected error occurred."}
    assert "sqlite" not in resp.text
