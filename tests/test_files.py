"""Tests for the file operations workflow."""

import re

import pytest

from storage import StorageError
from workflows.files import (
    download_link,
    init_user_storage,
    list_prefix,
    list_structure,
    presign_upload,
    sanitize_upload_name,
    upload_key,
    upload_local_file,
)
from workflows.keys import InvalidReferenceError
from workflows.resolver import KeyResolver


class FakePipeline:
    """Records flow starts instead of calling the automation API."""

    def __init__(self):
        self.calls = []

    def upload_manual(self, owner, file_name, path, file_url=None):
        self.calls.append(("manual", owner, file_name, path, file_url))
        return "run-manual"

    def upload_auto(self, owner, file_name, description="", file_url=None):
        self.calls.append(("auto", owner, file_name, description, file_url))
        return "run-auto"

    def create_folder(self, owner, folder_path):
        self.calls.append(("mkdir", owner, folder_path))
        return "run-mkdir"

    def poll_run_until_done(self, run_id, interval=2.0, timeout=300.0):
        self.calls.append(("poll", run_id, timeout))


@pytest.fixture
def pipeline():
    return FakePipeline()


@pytest.fixture
def resolver(store):
    return KeyResolver(store)


@pytest.fixture
def local_file(tmp_path):
    path = tmp_path / "My Report (final).pdf"
    path.write_text("pdf")
    return str(path)


class TestUploadKeys:
    """Tests for upload key generation."""

    def test_sanitize(self):
        assert sanitize_upload_name("My Report (final).pdf") == "My_Report__final_.pdf"
        assert sanitize_upload_name("ok-name_1.txt") == "ok-name_1.txt"
        assert sanitize_upload_name("café.txt") == "caf_.txt"

    def test_upload_key(self):
        assert upload_key("u1", "a b.pdf", now_ms=1700000000000) == "u1/1700000000000_a_b.pdf"

    def test_upload_key_uses_clock(self):
        assert re.fullmatch(r"u1/\d{13}_a\.pdf", upload_key("u1", "a.pdf"))


class TestPresignUpload:
    """Tests for presign_upload()."""

    def test_ticket(self, store):
        ticket = presign_upload(store, "u1", "scan 1.png", "image/png")

        assert re.fullmatch(r"u1/\d+_scan_1\.png", ticket.key)
        assert ticket.bucket == "primary"
        assert ticket.upload_url.endswith("?signed=put&type=image/png")
        assert ticket.object_url == f"https://primary.s3.test.amazonaws.com/{ticket.key}"
        assert "signed=get" in ticket.download_url

    def test_default_content_type(self, store):
        ticket = presign_upload(store, "u1", "blob", bucket="other")
        assert ticket.bucket == "other"
        assert ticket.upload_url.endswith("type=application/octet-stream")


class TestDownloadLink:
    """Tests for download_link()."""

    def test_resolved_by_path(self, store, resolver):
        store.add("primary", "u1/Documents/1700000000000_Tax_Return.pdf")
        link = download_link(store, resolver, owner="u1", path="/Documents/Tax Return.pdf")

        assert link.found is True
        assert link.key == "u1/Documents/1700000000000_Tax_Return.pdf"
        assert link.download_url == (
            "https://primary.s3.test.amazonaws.com/"
            "u1/Documents/1700000000000_Tax_Return.pdf?signed=get&expires=3600"
        )

    def test_uri_from_other_bucket(self, store, resolver):
        store.add("archive", "u1/a.pdf")
        link = download_link(store, resolver, owner="u1", uri="s3://archive/u1/a.pdf",
                             expires_in=60)
        assert (link.bucket, link.key, link.found) == ("archive", "u1/a.pdf", True)
        assert link.download_url.endswith("expires=60")

    def test_not_found_still_signs_original(self, store, resolver):
        link = download_link(store, resolver, owner="u1", key="u1/gone.pdf")
        assert link.found is False
        assert link.key == "u1/gone.pdf"
        assert "signed=get" in link.download_url

    def test_undecomposable_uri(self, store, resolver):
        with pytest.raises(StorageError, match="Could not locate file"):
            download_link(store, resolver, owner="u1", uri="ftp://nowhere/file")

    def test_missing_reference(self, store, resolver):
        with pytest.raises(InvalidReferenceError):
            download_link(store, resolver, owner="u1")


class TestUploadLocalFile:
    """Tests for upload_local_file()."""

    def test_manual_placement(self, store, pipeline, local_file):
        run_id = upload_local_file(store, pipeline, "u1", local_file, dest_path="/Documents")

        assert run_id == "run-manual"
        uploaded = [c for c in store.calls if c[0] == "upload"]
        assert len(uploaded) == 1
        _, bucket, key = uploaded[0]
        assert bucket == "primary"
        assert re.fullmatch(r"u1/\d+_My_Report__final_\.pdf", key)

        kind, owner, file_name, path, file_url = pipeline.calls[0]
        assert (kind, owner, file_name, path) == ("manual", "u1", "My Report (final).pdf", "/Documents")
        assert file_url == store.presign_get("primary", key)

    def test_ai_sorting(self, store, pipeline, local_file):
        run_id = upload_local_file(store, pipeline, "u1", local_file, description="receipt")
        assert run_id == "run-auto"
        assert pipeline.calls[0][:4] == ("auto", "u1", "My Report (final).pdf", "receipt")

    def test_relative_destination_rejected(self, store, pipeline, local_file):
        with pytest.raises(ValueError, match="must start with /"):
            upload_local_file(store, pipeline, "u1", local_file, dest_path="Documents")
        assert store.calls == []
        assert pipeline.calls == []


class TestListing:
    """Tests for list_structure() and list_prefix()."""

    def test_list_structure(self, store):
        store.add("primary", "u1/Docs/a.pdf")
        store.add("primary", "u1/Photos/.keep")
        store.add("primary", "u2/secret.pdf")
        raw, root = list_structure(store, "u1")

        assert raw == ["s3://primary/u1/Docs/a.pdf", "s3://primary/u1/Photos/.keep"]
        assert [child.name for child in root.children] == ["Docs", "Photos"]
        assert root.find_child("Photos").children == []

    def test_list_prefix_match(self, store):
        store.add("primary", "u1/Report.pdf")
        store.add("primary", "u1/notes.txt")
        assert [i.key for i in list_prefix(store, "u1/", match="report")] == ["u1/Report.pdf"]
        assert len(list_prefix(store, "u1/")) == 2


def test_init_user_storage(pipeline):
    init_user_storage(pipeline, "u1")
    assert pipeline.calls == [("mkdir", "u1", "/"), ("poll", "run-mkdir", 30.0)]
