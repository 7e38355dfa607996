import pytest

from vulnstore.common.errors import BlobDigestError
from vulnstore.common.models.blobs import VulnerabilityBlob
from vulnstore.db import Blob, BlobDigest, db_blobs, read_session_scope, session_scope


def test_compute_digest():
    digest = db_blobs.compute_digest('{"id":"CVE-2024-0001"}')
    algorithm, value = digest.split(":")
    assert algorithm == "blake2b64"
    assert len(value) == 16
    assert db_blobs.compute_digest(b'{"id":"CVE-2024-0001"}') == digest


def test_compute_digest_error():
    with pytest.raises(BlobDigestError):
        db_blobs.compute_digest(object())


def test_serialize_canonical():
    assert db_blobs.serialize({"b": 1, "a": 2}) == '{"a":2,"b":1}'
    assert db_blobs.serialize("as-is") == "as-is"
    assert db_blobs.serialize(VulnerabilityBlob(id="CVE-1")) == VulnerabilityBlob(
        id="CVE-1"
    ).to_json_str()

    with pytest.raises(BlobDigestError):
        db_blobs.serialize({"a": object()})


def test_put_dedup(vulnstore_db):
    with session_scope() as db:
        first = db_blobs.put(db, {"id": "CVE-2024-0001", "description": "a"})
        # same content, different key order
        second = db_blobs.put(db, {"description": "a", "id": "CVE-2024-0001"})
        third = db_blobs.put(db, {"id": "CVE-2024-0002", "description": "a"})

        assert first == second
        assert first != third

    with read_session_scope() as db:
        assert db.query(Blob).count() == 2
        assert db.query(BlobDigest).count() == 2


def test_put_dedup_across_sessions(vulnstore_db):
    with session_scope() as db:
        first = db_blobs.put(db, VulnerabilityBlob(id="CVE-2024-0001"))

    with session_scope() as db:
        second = db_blobs.put(db, VulnerabilityBlob(id="CVE-2024-0001"))

    assert first == second


def test_get(vulnstore_db):
    blob = VulnerabilityBlob(id="CVE-2024-0001", description="something bad")
    with session_scope() as db:
        blob_id = db_blobs.put(db, blob)

    with read_session_scope() as db:
        assert db_blobs.get(db, blob_id) == blob.to_json_str()
        assert db_blobs.get_vulnerability_blob(db, blob_id) == blob
        assert db_blobs.get_by_digest(
            db, db_blobs.compute_digest(blob.to_json_str())
        ) == blob_id

        assert db_blobs.get(db, blob_id + 100) is None
        assert db_blobs.get(db, None) is None
        assert db_blobs.get_vulnerability_blob(db, blob_id + 100) is None
        assert db_blobs.get_by_digest(db, "blake2b64:0000000000000000") is None


def test_find_id(vulnstore_db):
    blob = VulnerabilityBlob(id="CVE-2024-0001", description="a vulnerability")

    with read_session_scope() as db:
        assert db_blobs.find_id(db, blob) is None

    with session_scope() as db:
        blob_id = db_blobs.put(db, blob)

    with read_session_scope() as db:
        assert db_blobs.find_id(db, blob) == blob_id
        assert db_blobs.find_id(db, VulnerabilityBlob(id="CVE-2024-0002")) is None
        assert db.query(Blob).count() == 1
