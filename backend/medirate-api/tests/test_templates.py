import pytest

USER = "analyst@example.com"
FILTERS = {"state": ["TX"], "serviceCategory": "Home Health"}


@pytest.fixture
def headers(auth_headers):
    return auth_headers(USER)


def create(client, headers, name="Texas home health", page_name="dashboard", data=None):
    return client.post(
        "/api/v1/dashboard-templates",
        json={"template_name": name, "template_data": data or FILTERS, "page_name": page_name},
        headers=headers,
    )


def test_create_and_list(client, headers):
    response = create(client, headers)

    assert response.status_code == 201
    template = response.json()["template"]
    assert template["template_name"] == "Texas home health"
    assert template["template_data"] == FILTERS

    listed = client.get("/api/v1/dashboard-templates", headers=headers).json()["templates"]
    assert [t["id"] for t in listed] == [template["id"]]


def test_list_is_per_page(client, headers):
    create(client, headers, name="A")
    create(client, headers, name="B", page_name="rate-developments")

    listed = client.get("/api/v1/dashboard-templates?page_name=rate-developments", headers=headers).json()

    assert [t["template_name"] for t in listed["templates"]] == ["B"]


def test_duplicate_name_conflicts(client, headers):
    create(client, headers)

    response = create(client, headers, name="  Texas home health ")

    assert response.status_code == 409


def test_same_name_on_other_page_is_allowed(client, headers):
    create(client, headers)

    assert create(client, headers, page_name="historical-rates").status_code == 201


def test_templates_are_private(client, headers, auth_headers):
    template_id = create(client, headers).json()["template"]["id"]
    other = auth_headers("other@example.com")

    assert client.get("/api/v1/dashboard-templates", headers=other).json()["templates"] == []
    assert client.delete(f"/api/v1/dashboard-templates/{template_id}", headers=other).status_code == 404


def test_update_template(client, headers):
    template_id = create(client, headers).json()["template"]["id"]

    response = client.put(
        f"/api/v1/dashboard-templates/{template_id}",
        json={"template_name": "Renamed", "template_data": {"state": ["CA"]}},
        headers=headers,
    )

    assert response.status_code == 200
    assert response.json()["template"]["template_name"] == "Renamed"
    assert response.json()["template"]["template_data"] == {"state": ["CA"]}


def test_update_to_taken_name_conflicts(client, headers):
    create(client, headers, name="First")
    second = create(client, headers, name="Second").json()["template"]["id"]

    response = client.put(f"/api/v1/dashboard-templates/{second}", json={"template_name": "First"}, headers=headers)

    assert response.status_code == 409


def test_delete_template(client, headers):
    template_id = create(client, headers).json()["template"]["id"]

    assert client.delete(f"/api/v1/dashboard-templates/{template_id}", headers=headers).json() == {"success": True}
    assert client.get("/api/v1/dashboard-templates", headers=headers).json()["templates"] == []


def test_missing_template_data_is_invalid(client, headers):
    response = client.post("/api/v1/dashboard-templates", json={"template_name": "x"}, headers=headers)

    assert response.status_code == 400
