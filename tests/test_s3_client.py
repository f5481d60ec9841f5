"""Tests for the S3 object store client using botocore's Stubber."""
import io
from datetime import datetime, timedelta, timezone

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.config import Config
from botocore.stub import Stubber

from docpipeline.core.errors import ObjectStoreError
from docpipeline.services.s3_client import S3Client


@pytest.fixture
def s3():
    client = boto3.client("s3", region_name="us-east-1", config=Config(signature_version="s3v4"))
    with Stubber(client) as stubber:
        yield client, stubber
        stubber.assert_no_pending_responses()


@pytest.fixture
def store(s3):
    client, _ = s3
    return S3Client(bucket_name="documents", s3_client=client)


class TestLocations:

    def test_location_round_trip(self, store):
        assert store.location_for("a/b.pdf") == "s3://documents/a/b.pdf"
        assert store.key_from_location("s3://documents/a/b.pdf") == "a/b.pdf"

    def test_plain_key_passes_through(self, store):
        assert store.key_from_location("b.pdf") == "b.pdf"

    def test_foreign_bucket_rejected(self, store):
        with pytest.raises(ValueError):
            store.key_from_location("s3://other/b.pdf")

    def test_container_name_is_bucket(self, store):
        assert store.container_name == "documents"


class TestObjectOperations:

    def test_put_returns_location(self, s3, store):
        _, stubber = s3
        stubber.add_response(
            "put_object", {},
            {"Bucket": "documents", "Key": "abc.pdf", "Body": b"%PDF", "ContentType": "application/pdf"},
        )
        assert store.put("abc.pdf", b"%PDF", "application/pdf") == "s3://documents/abc.pdf"

    def test_put_failure_is_wrapped(self, s3, store):
        _, stubber = s3
        stubber.add_client_error("put_object", service_error_code="InternalError", http_status_code=500)
        with pytest.raises(ObjectStoreError):
            store.put("abc.pdf", b"%PDF", "application/pdf")

    def test_get_returns_bytes(self, s3, store):
        _, stubber = s3
        stubber.add_response(
            "get_object",
            {"Body": StreamingBody(io.BytesIO(b"%PDF"), 4)},
            {"Bucket": "documents", "Key": "abc.pdf"},
        )
        assert store.get("abc.pdf") == b"%PDF"

    def test_get_missing_returns_none(self, s3, store):
        _, stubber = s3
        stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)
        assert store.get("missing.pdf") is None

    def test_get_access_denied_raises(self, s3, store):
        _, stubber = s3
        stubber.add_client_error("get_object", service_error_code="AccessDenied", http_status_code=403)
        with pytest.raises(ObjectStoreError):
            store.get("abc.pdf")

    def test_delete_existing(self, s3, store):
        _, stubber = s3
        stubber.add_response("head_object", {}, {"Bucket": "documents", "Key": "abc.pdf"})
        stubber.add_response("delete_object", {}, {"Bucket": "documents", "Key": "abc.pdf"})
        assert store.delete("abc.pdf") is True

    def test_delete_missing_is_not_an_error(self, s3, store):
        _, stubber = s3
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
        assert store.delete("abc.pdf") is False

    def test_exists(self, s3, store):
        _, stubber = s3
        stubber.add_response("head_object", {}, {"Bucket": "documents", "Key": "abc.pdf"})
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
        assert store.exists("abc.pdf") is True
        assert store.exists("abc.pdf") is False

    def test_list_keys(self, s3, store):
        _, stubber = s3
        modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
        stubber.add_response(
            "list_objects_v2",
            {"Contents": [{"Key": "a.pdf", "Size": 4, "LastModified": modified}], "IsTruncated": False},
            {"Bucket": "documents"},
        )
        keys = list(store.list_keys())
        assert [k.key for k in keys] == ["a.pdf"]
        assert keys[0].size_bytes == 4
        assert keys[0].last_modified == modified


class TestSignedUrl:

    def test_signed_url_is_scoped_to_key_and_expiry(self, store):
        url = store.signed_url("abc.pdf", timedelta(minutes=10))
        assert "abc.pdf" in url
        assert "X-Amz-Expires=600" in url
        assert "documents" in url
