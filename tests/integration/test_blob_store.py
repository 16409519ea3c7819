"""Integration tests for the content-addressed image blob store."""

from __future__ import annotations

import hashlib
import json

import pytest

from storage.blobs import ContentAddressedBlobStore, blob_digest


@pytest.mark.integration
def test_put_get_remove_roundtrip(blob_store: ContentAddressedBlobStore):
    """put then get returns the bytes; remove then get returns None."""
    blob_store.put("u", b"image-bytes")
    assert blob_store.get("u") == b"image-bytes"
    assert blob_store.contains("u") is True

    blob_store.remove("u")
    assert blob_store.get("u") is None
    assert blob_store.contains("u") is False


@pytest.mark.integration
def test_blob_filename_is_sha256_of_key(blob_store: ContentAddressedBlobStore):
    url = "https://cdn.example.com/a.jpg"
    blob_store.put(url, b"x")

    expected = hashlib.sha256(url.encode("utf-8")).hexdigest()
    assert blob_digest(url) == expected
    assert (blob_store.cache_dir / expected).read_bytes() == b"x"


@pytest.mark.integration
def test_put_is_first_write_wins(blob_store: ContentAddressedBlobStore):
    blob_store.put("https://cdn.example.com/a.jpg", b"first")
    blob_store.put("https://cdn.example.com/a.jpg", b"second")

    assert blob_store.get("https://cdn.example.com/a.jpg") == b"first"


@pytest.mark.integration
def test_remove_missing_blob_is_noop(blob_store: ContentAddressedBlobStore, capsys):
    blob_store.remove("https://cdn.example.com/missing.jpg")

    assert capsys.readouterr().out == ""


@pytest.mark.integration
def test_clear_and_size_bytes(blob_store: ContentAddressedBlobStore):
    blob_store.put("a", b"12345")
    blob_store.put("b", b"123")
    assert blob_store.size_bytes() == 8

    blob_store.clear()

    assert blob_store.size_bytes() == 0
    assert blob_store.get("a") is None
    assert list(blob_store.cache_dir.iterdir()) == []


@pytest.mark.integration
def test_write_failure_is_logged_not_raised(tmp_path, capsys):
    """A blocked cache directory makes put a logged no-op."""
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way", encoding="utf-8")
    store = ContentAddressedBlobStore(blocker)

    store.put("https://cdn.example.com/a.jpg", b"x")

    assert store.get("https://cdn.example.com/a.jpg") is None
    events = [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.strip()]
    assert any(event["event_type"] == "blob_store_io_error" for event in events)
    assert all(event["level"] == "warning" for event in events)
