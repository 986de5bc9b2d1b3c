from sqlalchemy.exc import OperationalError

from barpos.db import get_session_dep

USER = {"X-User": "caixa1"}


def _new_order(client, table_id=12, items=None, **extra):
    body = {
        "table_id": table_id,
        "billing": {"mode": "anonymous"},
        "items": items or [{"product_id": 1, "quantity": 2, "price": "5.00"}],
        **extra,
    }
    return client.post("/api/orders", json=body, headers=USER)


def test_tables_are_polled_with_staleness_contract(client):
    r = client.get("/api/tables")
    assert r.status_code == 200
    assert len(r.json()) == 12
    assert r.headers["X-Max-Staleness-Ms"].isdigit()
    assert "X-Snapshot-At" in r.headers
    assert r.headers["Cache-Control"].startswith("no-store")

    grouped = client.get("/api/tables", params={"group": "location"}).json()
    assert list(grouped) == ["main_hall"]


def test_table_12_scenario(client):
    r = _new_order(client, total_amount="10.00")
    assert r.status_code == 201
    order = r.json()["order"]
    assert order["total_amount"] == "10.00"
    assert order["created_by"] == "caixa1"

    r = client.get("/api/tables/12/pending-order")
    assert r.json()["mode"] == "add_items"
    assert r.json()["order"]["id"] == order["id"]
    row = [t for t in client.get("/api/tables").json() if t["id"] == 12][0]
    assert row["status"] == "occupied" and row["addable"] is True

    r = client.post(f"/api/orders/{order['id']}/items", json={"items": [
        {"product_id": 1, "quantity": 1},
        {"product_id": 2, "quantity": 2, "price": "3.00"},
    ]}, headers=USER)
    assert r.status_code == 200
    merged = r.json()["order"]
    assert {i["product_id"]: i["quantity"] for i in merged["items"]} == {1: 1, 2: 2}
    assert merged["total_amount"] == "11.00"
    assert merged["version"] == 2


def test_merge_without_changes_is_a_warning(client):
    order = _new_order(client, table_id=3).json()["order"]
    r = client.post(f"/api/orders/{order['id']}/items",
                    json={"items": [{"product_id": 1, "quantity": 2}]})
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.json()["warning"] == "no_op"


def test_second_order_on_table_conflicts(client):
    first = _new_order(client, table_id=4).json()["order"]
    r = _new_order(client, table_id=4)
    assert r.status_code == 409
    assert r.json()["error"] == "table_not_free"
    assert r.json()["pending_order_id"] == first["id"]


def test_validation_errors(client):
    r = _new_order(client, table_id=5, items=[{"product_id": 3, "quantity": 1}])
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"

    r = client.post("/api/orders", json={"table_id": 5, "billing": {"mode": "credit"},
                                         "items": [{"product_id": 1, "quantity": 1}]})
    assert r.status_code == 400

    r = client.post("/api/orders", json={"table_id": 5, "items": []})
    assert r.status_code == 400
    assert r.json()["detail"] == "Carrello vuoto"


def test_status_transitions(client):
    order = _new_order(client, table_id=6).json()["order"]
    url = f"/api/orders/{order['id']}/status"

    r = client.put(url, json={"status": "ready"})
    assert r.status_code == 409
    assert r.json()["error"] == "invalid_transition"

    r = client.put(url, json={"status": "nonsense"})
    assert r.status_code == 400

    r = client.put(url, json={"status": "cancelled"})
    assert r.status_code == 200
    assert r.json()["order"]["status"] == "cancelled"
    assert client.get("/api/tables/6/pending-order").json()["mode"] == "new_order"


def test_unknown_order_is_404(client):
    assert client.get("/api/orders/999").status_code == 404
    r = client.put("/api/orders/999/status", json={"status": "preparing"})
    assert r.status_code == 404


def test_credit_order_flow(client):
    c = client.post("/api/credit-clients", json={"name": "Dona Rosa"}).json()["client"]
    r = client.post("/api/orders", json={
        "table_id": 7,
        "billing": {"mode": "credit", "credit_client_id": c["id"]},
        "items": [{"product_id": 2, "quantity": 3}],
    })
    oid = r.json()["order"]["id"]
    for st in ("preparing", "ready", "completed"):
        assert client.put(f"/api/orders/{oid}/status", json={"status": st}).status_code == 200

    clients = {x["id"]: x for x in client.get("/api/credit-clients").json()}
    assert clients[c["id"]]["total_credit"] == "9.00"

    r = client.post(f"/api/credit-clients/{c['id']}/payments", json={"amount": "10.00"})
    assert r.status_code == 422
    assert r.json()["error"] == "overpayment"

    r = client.post(f"/api/credit-clients/{c['id']}/payments", json={"amount": "4,50", "method": "cash"},
                    headers=USER)
    assert r.status_code == 201
    assert r.json()["client"]["total_credit"] == "4.50"

    r = client.post(f"/api/credit-clients/{c['id']}/payments", json={"amount": "abc"})
    assert r.status_code == 400


def test_session_lifecycle(client):
    assert client.get("/api/sessions/active").json()["session"] is None

    r = client.post("/api/sessions/open", json={"shift_type": "morning"}, headers=USER)
    assert r.status_code == 201
    sid = r.json()["session"]["id"]
    assert r.json()["session"]["opened_by"] == "caixa1"

    r = client.post("/api/sessions/open", json={"shift_type": "afternoon"})
    assert r.status_code == 409
    assert r.json()["error"] == "session_conflict"

    _new_order(client, table_id=8)
    _new_order(client, table_id=9, items=[{"product_id": 2, "quantity": 1}],
               billing={"mode": "manager", "client_name": "Gerente"})

    stats = client.get("/api/sessions/active").json()["stats"]
    assert stats["total_sales"] == "13.00"
    assert stats["cash_in_register"] == "10.00"
    assert stats["manager_consumption"] == "3.00"
    assert stats["transaction_count"] == 2
    assert stats["occupied_tables"] == 2
    assert stats["total_tables"] == 12

    r = client.post("/api/sessions/close")
    assert r.status_code == 200
    closed_stats = r.json()["stats"]
    assert client.get(f"/api/sessions/{sid}/stats").json()["stats"] == closed_stats
    assert client.get(f"/api/sessions/{sid}/stats").json()["stats"] == closed_stats
    assert client.post("/api/sessions/close").status_code == 404


def test_catalog_read_models(client):
    products = client.get("/api/products").json()
    by_name = {p["name"]: p for p in products}
    assert by_name["Vinho"]["orderable"] is False
    assert by_name["Vinho"]["stock_status"] == "low"
    assert by_name["Cerveja"]["price"] == "5.00"

    low = client.get("/api/products/low-stock").json()
    assert [p["name"] for p in low] == ["Vinho"]

    summary = client.get("/api/inventory/summary").json()
    assert summary["inventory_value"] == "310.00"

    cats = client.get("/api/categories").json()
    assert cats[0]["name"] == "Bebidas"
    assert len(client.get("/api/products", params={"category_id": cats[0]["id"]}).json()) == 3


def test_storage_failure_is_retryable(client):
    from barpos.main import app

    def _broken():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        yield  # pragma: no cover

    app.dependency_overrides[get_session_dep] = _broken
    r = client.get("/api/tables")
    assert r.status_code == 503
    assert r.json()["retryable"] is True
