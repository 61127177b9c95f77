from __future__ import annotations

import io

import boto3
import pytest
from botocore.stub import ANY, Stubber

from bulkimport.storage.factory import create_storage
from bulkimport.storage.local import LocalStorageAdapter
from bulkimport.storage.s3 import S3StorageAdapter


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


def test_local_put_open_delete(tmp_path):
    storage = LocalStorageAdapter(tmp_path)

    uri = storage.put_file("bulk-import/a.txt", io.BytesIO(b"hello\n"))

    assert uri == "local://bulk-import/a.txt"
    assert storage.exists("bulk-import/a.txt")
    with storage.open("bulk-import/a.txt") as fh:
        assert fh.read() == b"hello\n"

    storage.delete("bulk-import/a.txt")
    storage.delete("bulk-import/a.txt")
    assert not storage.exists("bulk-import/a.txt")


def test_local_delete_many_counts_keys(tmp_path):
    storage = LocalStorageAdapter(tmp_path)
    for name in ("a.txt", "b.txt"):
        storage.put_file(f"bulk-import/{name}", io.BytesIO(b"x"))

    assert storage.delete_many(["bulk-import/a.txt", "bulk-import/b.txt"]) == 2
    assert not storage.exists("bulk-import/a.txt")


def test_local_public_url(tmp_path):
    assert LocalStorageAdapter(tmp_path).public_url("bulk-import/a b.txt").startswith("file://")

    served = LocalStorageAdapter(tmp_path, public_base_url="https://files.example.com/")
    assert served.public_url("bulk-import/a b.txt") == "https://files.example.com/bulk-import/a%20b.txt"


@pytest.mark.parametrize("key", ["../escape.txt", "bulk-import/../../etc/passwd", ""])
def test_local_rejects_unsafe_keys(tmp_path, key):
    with pytest.raises(ValueError):
        LocalStorageAdapter(tmp_path).put_file(key, io.BytesIO(b"x"))


def test_create_storage_rejects_unknown_backend():
    with pytest.raises(ValueError):
        create_storage("ftp")


def test_s3_put_file(s3_client):
    storage = S3StorageAdapter("imports", region="us-east-1", client=s3_client)
    with Stubber(s3_client) as stub:
        stub.add_response(
            "put_object",
            {},
            {"Bucket": "imports", "Key": "bulk-import/a.txt", "Body": ANY, "ContentType": "text/plain"},
        )
        uri = storage.put_file("bulk-import/a.txt", io.BytesIO(b"q\n"), content_type="text/plain")
        stub.assert_no_pending_responses()

    assert uri == "s3://imports/bulk-import/a.txt"
    assert storage.public_url("bulk-import/a.txt") == (
        "https://imports.s3.us-east-1.amazonaws.com/bulk-import/a.txt"
    )


def test_s3_delete_many_reports_partial_failure(s3_client):
    storage = S3StorageAdapter("imports", client=s3_client)
    with Stubber(s3_client) as stub:
        stub.add_response(
            "delete_objects",
            {"Errors": [{"Key": "bulk-import/b.txt", "Code": "AccessDenied"}]},
            {
                "Bucket": "imports",
                "Delete": {
                    "Objects": [{"Key": "bulk-import/a.txt"}, {"Key": "bulk-import/b.txt"}],
                    "Quiet": True,
                },
            },
        )
        deleted = storage.delete_many(["bulk-import/a.txt", "bulk-import/b.txt"])

    assert deleted == 1


def test_s3_exists(s3_client):
    storage = S3StorageAdapter("imports", client=s3_client)
    with Stubber(s3_client) as stub:
        stub.add_response("head_object", {}, {"Bucket": "imports", "Key": "there.txt"})
        stub.add_client_error(
            "head_object",
            service_error_code="404",
            http_status_code=404,
            expected_params={"Bucket": "imports", "Key": "gone.txt"},
        )
        assert storage.exists("there.txt")
        assert not storage.exists("gone.txt")


def test_s3_public_url_with_endpoint(s3_client):
    storage = S3StorageAdapter(
        "imports", endpoint_url="http://minio:9000/", client=s3_client
    )
    assert storage.public_url("bulk-import/a.txt") == "http://minio:9000/imports/bulk-import/a.txt"
