import asyncio
import json

import pytest

from medirate_api.cli import library as library_cli
from medirate_api.services.reconcile import (
    default_concurrency,
    diff_paths,
    download_missing,
    remote_paths,
    scan_local,
    upload_missing,
)


@pytest.fixture
def local_root(tmp_path):
    root = tmp_path / "library"
    (root / "Texas" / "Fee Schedules").mkdir(parents=True)
    (root / "Texas" / "Fee Schedules" / "rates.pdf").write_bytes(b"rates")
    (root / "Texas" / "bulletin.DOCX").write_bytes(b"bulletin")
    (root / "Texas" / "notes.md").write_bytes(b"ignored")
    return root


def test_default_concurrency_is_bounded():
    assert 2 <= default_concurrency() <= 8


def test_scan_local_filters_extensions(local_root):
    assert scan_local(local_root) == {"Texas/Fee Schedules/rates.pdf", "Texas/bulletin.DOCX"}


def test_diff_paths():
    diff = diff_paths({"a.pdf", "b.pdf"}, ["/b.pdf", "c.xlsx"])

    assert diff.missing_remote == ["a.pdf"]
    assert diff.extra_remote == ["c.xlsx"]
    assert diff.local_count == 2
    assert diff.remote_count == 2
    assert not diff.in_sync


def test_remote_paths_skip_placeholders(blob_store):
    blob_store.add("Texas/a.pdf")
    blob_store.add("Texas/.gitkeep", b"")
    blob_store.add("_metadata/state-links.json")

    assert remote_paths(blob_store) == {"Texas/a.pdf": "https://blob.test/Texas/a.pdf"}


def test_upload_missing_continues_after_failure(local_root, blob_store):
    blob_store.fail_paths.add("Texas/bulletin.DOCX")

    report = asyncio.run(upload_missing(
        blob_store, local_root, ["Texas/Fee Schedules/rates.pdf", "Texas/bulletin.DOCX"], concurrency=2
    ))

    assert report.succeeded == ["Texas/Fee Schedules/rates.pdf"]
    assert [path for path, _ in report.failed] == ["Texas/bulletin.DOCX"]
    assert not report.ok
    assert blob_store.blobs["Texas/Fee Schedules/rates.pdf"][1] == b"rates"


def test_download_missing(tmp_path, blob_store):
    blob = blob_store.add("Ohio/Manuals/m.pdf", b"manual")

    report = asyncio.run(download_missing(blob_store, tmp_path, {"Ohio/Manuals/m.pdf": blob.url}))

    assert report.ok
    assert (tmp_path / "Ohio" / "Manuals" / "m.pdf").read_bytes() == b"manual"


def test_compare_in_sync(local_root, blob_store, capsys):
    blob_store.add("Texas/Fee Schedules/rates.pdf")
    blob_store.add("Texas/bulletin.DOCX")

    assert library_cli.main(["compare", str(local_root)], store=blob_store) == library_cli.EXIT_OK
    assert "In sync" in capsys.readouterr().out


def test_compare_reports_drift(local_root, blob_store, capsys):
    blob_store.add("Texas/Fee Schedules/rates.pdf")
    blob_store.add("Ohio/extra.pdf")

    assert library_cli.main(["compare", str(local_root)], store=blob_store) == library_cli.EXIT_DRIFT
    out = capsys.readouterr().out
    assert "Texas/bulletin.DOCX" in out
    assert "Ohio/extra.pdf" in out


def test_sync_uploads_missing(local_root, blob_store):
    blob_store.add("Texas/Fee Schedules/rates.pdf")

    exit_code = library_cli.main(["sync", str(local_root), "--concurrency", "2"], store=blob_store)

    assert exit_code == library_cli.EXIT_OK
    assert "Texas/bulletin.DOCX" in blob_store.blobs


def test_sync_failure_exits_with_error(local_root, blob_store):
    blob_store.fail_paths.add("Texas/bulletin.DOCX")

    assert library_cli.main(["sync", str(local_root)], store=blob_store) == library_cli.EXIT_ERROR


def test_pull_downloads_extra_files(local_root, blob_store):
    blob_store.add("Ohio/extra.pdf", b"extra")

    assert library_cli.main(["pull", str(local_root)], store=blob_store) == library_cli.EXIT_OK
    assert (local_root / "Ohio" / "extra.pdf").read_bytes() == b"extra"


def test_create_archives_writes_results(tmp_path, blob_store):
    blob_store.add("Ohio/Manuals/m.pdf")
    output = tmp_path / "results.json"

    exit_code = library_cli.main(["create-archives", "--output", str(output)], store=blob_store)

    assert exit_code == library_cli.EXIT_OK
    assert json.loads(output.read_text())["created"] == ["Ohio/Manuals_ARCHIVE/.gitkeep"]


def test_missing_token_exits_with_error(local_root, monkeypatch):
    for name in library_cli.TOKEN_VARIABLES:
        monkeypatch.delenv(name, raising=False)

    assert library_cli.main(["compare", str(local_root)]) == library_cli.EXIT_ERROR


def test_blob_token_precedence():
    assert library_cli.blob_token({"BLOB_TOKEN": "c", "VERCEL_BLOB_RW_TOKEN": "b"}) == "b"
    assert library_cli.blob_token({}) is None


def test_concurrency_must_be_positive(local_root, blob_store):
    with pytest.raises(SystemExit):
        library_cli.main(["sync", str(local_root), "--concurrency", "0"], store=blob_store)
