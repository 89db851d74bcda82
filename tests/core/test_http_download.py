"""
Unit tests for streaming HTTP downloads.

Tests cover:
- SRI integrity computation
- Successful download with and without expected integrity
- Integrity mismatch cleanup
- HTTP and connection errors
"""

import base64
import hashlib

import pytest
import requests
import responses

from dlxkit.core.download import (
    StreamingHasher,
    compute_integrity,
    http_download,
    integrity_algorithm,
)
from dlxkit.core.exceptions import DownloadError, IntegrityError

URL = "https://example.com/tool"
CONTENT = b"#!/bin/sh\necho tool\n"


def _sri(data, algorithm="sha512"):
    digest = hashlib.new(algorithm, data).digest()
    return f"{algorithm}-{base64.b64encode(digest).decode('ascii')}"


class TestIntegrity:
    """Test SRI helpers."""

    def test_compute_bytes(self):
        """Test integrity of bytes matches hashlib."""
        assert compute_integrity(CONTENT) == _sri(CONTENT)

    def test_compute_file(self, tmp_path):
        """Test integrity of a file matches its bytes."""
        path = tmp_path / "f"
        path.write_bytes(CONTENT)

        assert compute_integrity(path, "sha256") == _sri(CONTENT, "sha256")

    def test_streaming_hasher_verify(self):
        """Test verify compares against an SRI string."""
        hasher = StreamingHasher()
        hasher.update(CONTENT[:5])
        hasher.update(CONTENT[5:])

        assert hasher.verify(_sri(CONTENT) + "\n")

    def test_unsupported_algorithm(self):
        """Test unsupported algorithms are rejected."""
        with pytest.raises(ValueError):
            StreamingHasher("md5")

    def test_integrity_algorithm(self):
        """Test the algorithm prefix is extracted."""
        assert integrity_algorithm("sha384-abc") == "sha384"
        with pytest.raises(ValueError):
            integrity_algorithm("nodash")


class TestHttpDownload:
    """Test http_download."""

    @responses.activate
    def test_download(self, tmp_path):
        """Test content lands at the destination and integrity is returned."""
        responses.add(responses.GET, URL, body=CONTENT, status=200)
        destination = tmp_path / "bin" / "tool"

        integrity = http_download(URL, destination)

        assert destination.read_bytes() == CONTENT
        assert integrity == _sri(CONTENT)
        assert [p.name for p in destination.parent.iterdir()] == ["tool"]

    @responses.activate
    def test_expected_integrity_matches(self, tmp_path):
        """Test a matching expected integrity is accepted."""
        responses.add(responses.GET, URL, body=CONTENT, status=200)

        integrity = http_download(URL, tmp_path / "tool", _sri(CONTENT))

        assert integrity == _sri(CONTENT)

    @responses.activate
    def test_integrity_mismatch(self, tmp_path):
        """Test a mismatch raises and leaves nothing behind."""
        responses.add(responses.GET, URL, body=CONTENT, status=200)
        destination = tmp_path / "tool"

        with pytest.raises(IntegrityError) as exc_info:
            http_download(URL, destination, _sri(b"other"))

        assert "Integrity mismatch" in str(exc_info.value)
        assert not destination.exists()
        assert list(tmp_path.iterdir()) == []

    @responses.activate
    def test_http_error(self, tmp_path):
        """Test a 404 becomes DownloadError."""
        responses.add(responses.GET, URL, status=404)

        with pytest.raises(DownloadError):
            http_download(URL, tmp_path / "tool")

        assert list(tmp_path.iterdir()) == []

    @responses.activate
    def test_connection_error(self, tmp_path):
        """Test a connection failure becomes DownloadError."""
        responses.add(
            responses.GET, URL, body=requests.exceptions.ConnectionError("offline")
        )

        with pytest.raises(DownloadError) as exc_info:
            http_download(URL, tmp_path / "tool")

        assert not isinstance(exc_info.value, IntegrityError)

    @responses.activate
    def test_uses_session(self, tmp_path):
        """Test a provided session is used for the request."""
        responses.add(responses.GET, URL, body=CONTENT, status=200)

        with requests.Session() as session:
            http_download(URL, tmp_path / "tool", session=session)

        assert len(responses.calls) == 1

    def test_empty_url(self, tmp_path):
        """Test an empty URL is rejected."""
        with pytest.raises(ValueError):
            http_download("", tmp_path / "tool")
