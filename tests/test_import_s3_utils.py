"""Tests for S3 utilities."""

from __future__ import annotations

from io import BytesIO

import pytest
from botocore.exceptions import ClientError

from padu_api.imports.s3_utils import S3Client


class MockBoto3Client:
    """Records calls made by S3Client and serves objects from a dict."""

    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.uploads: list[dict] = []

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        self.uploads.append({"bucket": bucket, "key": key, "ExtraArgs": ExtraArgs})
        self.objects[(bucket, key)] = fileobj.read()

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
        return {"Body": BytesIO(self.objects[(Bucket, Key)])}

    def delete_object(self, Bucket, Key):
        raise ClientError({"Error": {"Code": "AccessDenied"}}, "DeleteObject")


@pytest.fixture
def boto_client(monkeypatch) -> MockBoto3Client:
    mock = MockBoto3Client()
    monkeypatch.setattr(
        "padu_api.imports.s3_utils.boto3.client", lambda service, **kwargs: mock
    )
    return mock


class TestS3Client:
    """Test S3 client operations."""

    def test_upload_file(self, boto_client):
        """Test file upload with a content type."""
        result = S3Client().upload_file(b"rows", "imports/a.json", "application/json")

        assert result == "imports/a.json"
        assert boto_client.uploads[0]["ExtraArgs"] == {"ContentType": "application/json"}

    def test_upload_file_without_content_type(self, boto_client):
        S3Client().upload_file(b"rows", "imports/a.json")

        assert boto_client.uploads[0]["ExtraArgs"] == {}

    def test_json_round_trip_keeps_unicode(self, boto_client):
        """Staged payloads are UTF-8 JSON."""
        client = S3Client()
        payload = {"headers": ["text"], "rows": [["Très bien"]], "row_numbers": [3]}

        client.upload_json(payload, "imports/b.json")

        assert "Très bien".encode("utf-8") in boto_client.objects[(client.bucket, "imports/b.json")]
        assert client.download_json("imports/b.json") == payload

    def test_download_missing_key(self, boto_client):
        with pytest.raises(ClientError):
            S3Client().download_file("imports/missing.json")

    def test_delete_failure_is_logged(self, boto_client, caplog):
        S3Client().delete_file("imports/a.json")

        assert "Could not delete s3://" in caplog.text
