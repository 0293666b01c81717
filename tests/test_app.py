def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "message": "Earn Task Platform API is running"}


def test_unknown_route(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Route not found"}


def test_validation_errors_use_envelope(client):
    response = client.post("/api/auth/login", json={"email": "user@example.com"})
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "password: Field required"}


def test_unexpected_errors_are_hidden(client, db, login_as, make_user):
    login_as(make_user())
    db.queue([{"id": 1}])  # transaction rows missing the fields the serializer needs
    response = client.get("/api/wallet/transactions")
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error"}
