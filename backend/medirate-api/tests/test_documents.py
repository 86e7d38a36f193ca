import json

import pytest

from medirate_api.services.library import (
    DocumentLibrary,
    build_tree,
    extract_state,
    extract_subfolder,
    format_file_size,
    is_hidden,
    plan_archive_folders,
    state_structure,
)


@pytest.mark.parametrize("size, expected", [
    (0, "0 Bytes"),
    (512, "512 Bytes"),
    (1024, "1 KB"),
    (1536, "1.5 KB"),
    (5 * 1024 * 1024, "5 MB"),
    (int(2.25 * 1024 ** 3), "2.25 GB"),
])
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected


def test_extract_state_and_subfolder():
    assert extract_state("Texas/Fee Schedules/2024/rates.pdf") == "Texas"
    assert extract_subfolder("Texas/Fee Schedules/2024/rates.pdf") == "2024"
    assert extract_state("/Ohio/bulletin.pdf") == "Ohio"
    assert extract_subfolder("Ohio/bulletin.pdf") is None
    assert extract_state("readme.txt") is None


def test_hidden_paths():
    assert is_hidden("_metadata/state-links.json")
    assert is_hidden("Texas/Fee Schedules/.gitkeep")
    assert not is_hidden("Texas/Fee Schedules/rates.pdf")


def test_build_tree_sorts_folders_first():
    tree = build_tree([
        "Texas/zeta.pdf",
        "Texas/Fee Schedules/rates.pdf",
        "Texas/Empty/.gitkeep",
        "_metadata/state-links.json",
        "Alabama/a.pdf",
    ])

    assert [node["name"] for node in tree] == ["Alabama", "Texas"]
    texas = tree[1]
    assert [(n["name"], n["type"]) for n in texas["children"]] == [
        ("Empty", "folder"),
        ("Fee Schedules", "folder"),
        ("zeta.pdf", "file"),
    ]
    assert texas["children"][0]["children"] == []


def test_state_structure_skips_archives_and_metadata():
    structure = state_structure([
        "Texas/Fee Schedules/rates.pdf",
        "Texas/Fee Schedules_ARCHIVE/old.pdf",
        "Texas/Bulletins/b.pdf",
        "Texas/notes.pdf",
        "_metadata/state-links.json",
        "Ohio/manifest.json",
    ])

    assert structure == {"Texas": ["Bulletins", "Fee Schedules"]}


def test_plan_archive_folders():
    planned = plan_archive_folders([
        "Texas/Fee Schedules/rates.pdf",
        "Texas/Fee Schedules_ARCHIVE/.gitkeep",
        "Texas/Bulletins/b.pdf",
        "Ohio/Manuals/m.pdf",
    ])

    assert sorted(planned) == ["Ohio/Manuals_ARCHIVE/.gitkeep", "Texas/Bulletins_ARCHIVE/.gitkeep"]


@pytest.fixture
def library(blob_store):
    blob_store.add("Texas/Fee Schedules/rates.pdf", b"x" * 2048)
    blob_store.add("Texas/Fee Schedules/.gitkeep", b"")
    blob_store.add("Texas/Fee Schedules_ARCHIVE/old.pdf")
    blob_store.add("_metadata/state-links.json", json.dumps({"Texas": [{"url": "https://hhs.texas.gov"}]}).encode())
    return DocumentLibrary(blob_store)


def test_list_documents(library):
    documents = library.list_documents()

    assert [d["filePath"] for d in documents] == [
        "Texas/Fee Schedules/rates.pdf",
        "Texas/Fee Schedules_ARCHIVE/old.pdf",
    ]
    assert documents[0]["fileSize"] == "2 KB"
    assert documents[0]["state"] == "Texas"
    assert documents[0]["type"] == "pdf"
    assert documents[1]["isArchived"] is True


def test_state_links(library):
    assert library.state_links() == {"Texas": [{"url": "https://hhs.texas.gov"}]}


def test_copy_folder(library, blob_store):
    created = library.copy("Texas/Fee Schedules", "Ohio/Fee Schedules")

    assert sorted(created) == ["Ohio/Fee Schedules/.gitkeep", "Ohio/Fee Schedules/rates.pdf"]
    assert "Texas/Fee Schedules/rates.pdf" in blob_store.blobs


def test_move_file(library, blob_store):
    library.move("Texas/Fee Schedules/rates.pdf", "Texas/Fee Schedules_ARCHIVE")

    assert "Texas/Fee Schedules_ARCHIVE/rates.pdf" in blob_store.blobs
    assert "Texas/Fee Schedules/rates.pdf" not in blob_store.blobs


def test_rename_rejects_nested_name(library):
    with pytest.raises(ValueError):
        library.rename("Texas/Fee Schedules/rates.pdf", "a/b.pdf")


def test_copy_into_itself_rejected(library):
    with pytest.raises(ValueError):
        library.copy("Texas", "Texas/Nested")


def test_copy_missing_source(library):
    with pytest.raises(FileNotFoundError):
        library.copy("Nowhere", "Elsewhere")


def test_create_archives(library, blob_store):
    blob_store.add("Ohio/Manuals/m.pdf")

    dry_run = library.create_archives(dry_run=True)
    assert dry_run["planned"] == ["Ohio/Manuals_ARCHIVE/.gitkeep"]
    assert "Ohio/Manuals_ARCHIVE/.gitkeep" not in blob_store.blobs

    result = library.create_archives()
    assert result["summary"] == {"planned": 1, "created": 1, "failed": 0}
    assert "Ohio/Manuals_ARCHIVE/.gitkeep" in blob_store.blobs


def test_create_archives_records_failures(library, blob_store):
    blob_store.add("Ohio/Manuals/m.pdf")
    blob_store.fail_paths.add("Ohio/Manuals_ARCHIVE/.gitkeep")

    result = library.create_archives()

    assert result["summary"]["failed"] == 1
    assert result["errors"][0]["path"] == "Ohio/Manuals_ARCHIVE/.gitkeep"


@pytest.fixture
def subscriber_headers(auth_headers, stripe_client):
    stripe_client.add_subscription("paid@example.com")
    return auth_headers("paid@example.com")


def test_list_endpoint(client, library, subscriber_headers):
    response = client.get("/api/v1/documents", headers=subscriber_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert "Texas" in body["stateLinks"]


def test_list_endpoint_requires_access(client, library, auth_headers):
    response = client.get("/api/v1/documents", headers=auth_headers("nobody@example.com"))

    assert response.status_code == 403


def test_download_redirects(client, library, subscriber_headers):
    response = client.get(
        "/api/v1/documents/download",
        params={"path": "Texas/Fee Schedules/rates.pdf"},
        headers=subscriber_headers,
        follow_redirects=False,
    )

    assert response.status_code == 307
    assert response.headers["location"].endswith("rates.pdf?download=1")


def test_download_hidden_file_is_not_found(client, library, subscriber_headers):
    response = client.get(
        "/api/v1/documents/download", params={"path": "_metadata/state-links.json"}, headers=subscriber_headers
    )

    assert response.status_code == 404


def test_admin_upload(client, blob_store, auth_headers, admin_email):
    response = client.post(
        "/api/v1/documents/upload",
        files={"file": ("rates.pdf", b"%PDF-1.4", "application/pdf")},
        data={"folderPath": "Ohio/Fee Schedules"},
        headers=auth_headers(admin_email),
    )

    assert response.status_code == 201
    assert response.json()["path"] == "Ohio/Fee Schedules/rates.pdf"
    assert blob_store.blobs["Ohio/Fee Schedules/rates.pdf"][1] == b"%PDF-1.4"


def test_upload_empty_file_rejected(client, auth_headers, admin_email):
    response = client.post(
        "/api/v1/documents/upload",
        files={"file": ("empty.pdf", b"", "application/pdf")},
        headers=auth_headers(admin_email),
    )

    assert response.status_code == 400


def test_upload_requires_admin(client, subscriber_headers):
    response = client.post(
        "/api/v1/documents/upload",
        files={"file": ("rates.pdf", b"%PDF-1.4", "application/pdf")},
        headers=subscriber_headers,
    )

    assert response.status_code == 403


def test_create_folder(client, blob_store, auth_headers, admin_email):
    response = client.post(
        "/api/v1/documents/create-folder", json={"folderPath": "/Ohio/New/"}, headers=auth_headers(admin_email)
    )

    assert response.status_code == 201
    assert response.json()["path"] == "Ohio/New"
    assert "Ohio/New/.gitkeep" in blob_store.blobs


def test_delete_folder(client, library, blob_store, auth_headers, admin_email):
    response = client.delete(
        "/api/v1/documents", params={"path": "Texas/Fee Schedules"}, headers=auth_headers(admin_email)
    )

    assert response.json() == {"success": True, "deleted": 2}
    assert "Texas/Fee Schedules_ARCHIVE/old.pdf" in blob_store.blobs


def test_delete_missing_path(client, library, auth_headers, admin_email):
    response = client.delete("/api/v1/documents", params={"path": "Nowhere"}, headers=auth_headers(admin_email))

    assert response.status_code == 404


def test_rename_endpoint(client, library, blob_store, auth_headers, admin_email):
    response = client.post(
        "/api/v1/documents/rename",
        json={"path": "Texas/Fee Schedules/rates.pdf", "newName": "rates-2024.pdf"},
        headers=auth_headers(admin_email),
    )

    assert response.status_code == 200
    assert response.json()["paths"] == ["Texas/Fee Schedules/rates-2024.pdf"]


def test_copy_missing_source_endpoint(client, library, auth_headers, admin_email):
    response = client.post(
        "/api/v1/documents/copy",
        json={"source": "Nowhere", "destination": "Elsewhere"},
        headers=auth_headers(admin_email),
    )

    assert response.status_code == 404


def test_tree_and_structure_endpoints(client, library, auth_headers, admin_email):
    headers = auth_headers(admin_email)

    tree = client.get("/api/v1/documents/tree", headers=headers).json()["tree"]
    structure = client.get("/api/v1/documents/structure", headers=headers).json()["structure"]

    assert [node["name"] for node in tree] == ["Texas"]
    assert structure == {"Texas": ["Fee Schedules"]}


def test_create_archives_endpoint(client, library, auth_headers, admin_email):
    response = client.post("/api/v1/documents/create-archives", json={"dryRun": True}, headers=auth_headers(admin_email))

    assert response.status_code == 200
    assert response.json()["summary"]["planned"] == 0
