import asyncio

from medirate_api.health import HealthChecker


def test_liveness(client):
    response = client.get("/health/live")

    assert response.status_code == 200
    assert response.json() == {"status": "alive", "service": "medirate-api"}


def test_health_checks_pass(session_factory, config):
    checker = HealthChecker(session_factory=session_factory, config_loader=lambda: config)

    result = asyncio.run(checker.check_all())

    assert result["status"] == "healthy"
    assert result["checks"]["database"]["healthy"] is True


def test_missing_credentials_are_unhealthy(session_factory, config):
    config.stripe.webhook_secret = ""
    checker = HealthChecker(session_factory=session_factory, config_loader=lambda: config)

    result = asyncio.run(checker.check_all())

    assert result["status"] == "unhealthy"
    assert "stripe.webhook_secret" in result["checks"]["configuration"]["error"]


def test_metrics_endpoint(client):
    client.get("/health/live")

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "medirate_request_duration_seconds" in response.text


def test_unknown_route_uses_error_body(client):
    response = client.get("/api/v1/nope")

    assert response.status_code == 404
    assert response.json() == {"error": "Not Found", "details": None}


def test_readiness_reports_checks(app, client, session_factory, config):
    from medirate_api.api.health import get_health_checker

    app.dependency_overrides[get_health_checker] = lambda: HealthChecker(
        session_factory=session_factory, config_loader=lambda: config
    )

    response = client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "ready"
    assert set(response.json()["checks"]) == {"database", "configuration"}


def test_readiness_fails_without_credentials(app, client, session_factory, config):
    from medirate_api.api.health import get_health_checker

    config.blob.token = ""
    app.dependency_overrides[get_health_checker] = lambda: HealthChecker(
        session_factory=session_factory, config_loader=lambda: config
    )

    response = client.get("/health/ready")

    assert response.status_code == 503
    assert "blob.token" in response.json()["checks"]["configuration"]["error"]
