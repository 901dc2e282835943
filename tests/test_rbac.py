import pytest

INVOICE = {"userId": "alice", "amount": "99.99", "description": "Monthly support", "dueDate": "2030-02-01T00:00:00Z"}


@pytest.mark.parametrize(
    "method,path,payload",
    [
        ("get", "/api/admin/users", None),
        ("put", "/api/admin/users/alice/role", {"role": "admin"}),
        ("put", "/api/admin/users/alice/status", {"isActive": False}),
        ("get", "/api/admin/appointments", None),
        ("get", "/api/admin/service-requests", None),
        ("get", "/api/admin/invoices", None),
        ("post", "/api/admin/invoices", INVOICE),
        ("put", "/api/admin/invoices/1", {"status": "paid"}),
        ("get", "/api/admin/contact-submissions", None),
        ("put", "/api/admin/contact-submissions/1/read", None),
        ("get", "/api/health/connections", None),
    ],
)
def test_admin_routes_forbidden_for_clients(client, login_as, method, path, payload):
    login_as("alice")
    kwargs = {"json": payload} if payload is not None else {}
    r = getattr(client, method)(path, **kwargs)
    assert r.status_code == 403
    assert r.json()["detail"] == "Admin access required"


def test_admin_routes_require_session(client):
    assert client.get("/api/admin/users").status_code == 401


def test_admin_can_promote_user(client, login_as, create_user):
    create_user("alice")
    login_as("boss", role="admin")
    r = client.put("/api/admin/users/alice/role", json={"role": "admin"})
    assert r.status_code == 200
    assert r.json()["role"] == "admin"

    ids = {u["id"] for u in client.get("/api/admin/users").json()}
    assert ids == {"alice", "boss"}


def test_invalid_role_is_rejected_and_row_unchanged(client, login_as, create_user, storage):
    create_user("alice")
    login_as("boss", role="admin")
    r = client.put("/api/admin/users/alice/role", json={"role": "superuser"})
    assert r.status_code == 400
    assert storage.get_user("alice").role == "client"


def test_role_update_for_missing_user(client, login_as):
    login_as("boss", role="admin")
    assert client.put("/api/admin/users/ghost/role", json={"role": "admin"}).status_code == 404


def test_deactivated_user_is_locked_out(client, login_as, create_user):
    create_user("alice")
    login_as("boss", role="admin")
    r = client.put("/api/admin/users/alice/status", json={"isActive": False})
    assert r.status_code == 200
    assert r.json()["isActive"] is False

    login_as("alice")
    r = client.get("/api/appointments")
    assert r.status_code == 403
    assert r.json()["detail"] == "Account is disabled"


def test_status_requires_boolean(client, login_as, create_user):
    create_user("alice")
    login_as("boss", role="admin")
    assert client.put("/api/admin/users/alice/status", json={"isActive": "no"}).status_code == 400


def test_cross_user_access_is_not_found(client, login_as):
    login_as("alice")
    created = client.post(
        "/api/appointments",
        json={"title": "Private", "serviceType": "cybersecurity", "scheduledAt": "2030-03-01T10:00:00Z"},
    ).json()
    request = client.post(
        "/api/service-requests",
        json={"title": "Private", "serviceType": "devops", "description": "Only mine"},
    ).json()

    login_as("mallory")
    assert client.get(f"/api/appointments/{created['id']}").status_code == 404
    assert client.put(f"/api/appointments/{created['id']}", json={"status": "cancelled"}).status_code == 404
    assert client.delete(f"/api/appointments/{created['id']}").status_code == 404
    assert client.get(f"/api/service-requests/{request['id']}").status_code == 404
    assert client.put(f"/api/service-requests/{request['id']}", json={"status": "closed"}).status_code == 404
    assert client.get("/api/appointments").json() == []

    login_as("alice")
    assert client.get(f"/api/appointments/{created['id']}").json()["status"] == "pending"


def test_admin_listings_span_all_users(client, login_as):
    for user_id in ("alice", "bob"):
        login_as(user_id)
        client.post(
            "/api/appointments",
            json={"title": f"{user_id} call", "serviceType": "it-support", "scheduledAt": "2030-03-01T10:00:00Z"},
        )
    login_as("boss", role="admin")
    r = client.get("/api/admin/appointments")
    assert r.status_code == 200
    assert {a["userId"] for a in r.json()} == {"alice", "bob"}


def test_admin_invoice_lifecycle(client, login_as, create_user):
    create_user("alice")
    login_as("boss", role="admin")
    r = client.post("/api/admin/invoices", json=INVOICE)
    assert r.status_code == 201
    invoice = r.json()
    assert invoice["status"] == "pending"

    r = client.put(f"/api/admin/invoices/{invoice['id']}", json={"status": "paid"})
    assert r.status_code == 200
    assert r.json()["status"] == "paid"
    assert r.json()["amount"] == "99.99"

    assert client.put("/api/admin/invoices/999", json={"status": "paid"}).status_code == 404
    assert len(client.get("/api/admin/invoices").json()) == 1


def test_admin_invoice_for_unknown_user(client, login_as):
    login_as("boss", role="admin")
    r = client.post("/api/admin/invoices", json={**INVOICE, "userId": "ghost"})
    assert r.status_code == 400
    assert "foreign key" in r.json()["detail"]


def test_admin_invoice_negative_amount(client, login_as, create_user):
    create_user("alice")
    login_as("boss", role="admin")
    assert client.post("/api/admin/invoices", json={**INVOICE, "amount": "-5"}).status_code == 400


def test_admin_contact_inbox(client, login_as):
    r = client.post(
        "/api/contact",
        json={"name": "Ann", "email": "ann@example.com", "subject": "Hi", "message": "Call me"},
    )
    submission_id = r.json()["id"]

    login_as("boss", role="admin")
    inbox = client.get("/api/admin/contact-submissions").json()
    assert inbox[0]["isRead"] is False

    for _ in range(2):
        r = client.put(f"/api/admin/contact-submissions/{submission_id}/read")
        assert r.status_code == 200
        assert r.json()["isRead"] is True

    assert client.put("/api/admin/contact-submissions/999/read").status_code == 404
