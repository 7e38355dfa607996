"""
Content-addressed blob store. Blobs are immutable: put() either reuses the row holding identical content or creates a
new one, there is no update.
"""
import hashlib

from vulnstore.common.errors import BlobDigestError
from vulnstore.common.models.blobs import AffectedPackageBlob, VulnerabilityBlob
from vulnstore.common.schemas import canonical_json
from vulnstore.db import Blob, BlobDigest
from vulnstore.db.results import find_or_insert
from vulnstore.subsys import logger
from vulnstore.utils import ensure_bytes, ensure_str

DIGEST_ALGORITHM = "blake2b64"
DIGEST_SIZE_BYTES = 8


def compute_digest(value):
    """
    Self describing 64-bit digest of the value, e.g. blake2b64:0a160d2b53dd0208

    :param value: str or bytes
    :return: digest string
    """
    try:
        digest = hashlib.blake2b(ensure_bytes(value), digest_size=DIGEST_SIZE_BYTES)
    except (TypeError, ValueError, AttributeError) as err:
        raise BlobDigestError(err) from err

    return "{}:{}".format(DIGEST_ALGORITHM, digest.hexdigest())


def serialize(payload):
    """
    Canonical string form of a blob payload: a JsonSerializable, a json-able dict/list, or an already serialized
    str/bytes value (stored as-is).
    """
    if isinstance(payload, (str, bytes)):
        return ensure_str(payload)

    if hasattr(payload, "to_json"):
        payload = payload.to_json()

    try:
        return canonical_json(payload)
    except (TypeError, ValueError) as err:
        raise BlobDigestError(err) from err


def put(session, value):
    """
    Store the value, reusing the existing blob if identical content is already stored.

    :param session:
    :param value: str, bytes, dict or JsonSerializable payload
    :return: blob id
    """
    serialized = serialize(value)
    digest = compute_digest(serialized)

    def lookup():
        return session.get(BlobDigest, digest)

    def build():
        blob = Blob(value=serialized)
        return BlobDigest(id=digest, blob=blob)

    result = find_or_insert(session, lookup, build, "blob digest {}".format(digest))
    if result.existing:
        logger.spew("reusing blob {} for digest {}".format(result.entity.blob_id, digest))

    return result.entity.blob_id


def find_id(session, value):
    """
    Id of the blob holding content identical to value, None if no such blob is stored. Never writes.
    """
    return get_by_digest(session, compute_digest(serialize(value)))


def get(session, blob_id):
    """
    :param session:
    :param blob_id:
    :return: the stored string value or None if there is no such blob
    """
    if blob_id is None:
        return None

    blob = session.get(Blob, blob_id)
    if blob is None:
        return None

    return blob.value


def get_by_digest(session, digest):
    record = session.get(BlobDigest, digest)
    if record is None:
        return None
    return record.blob_id


def get_typed(session, blob_id, payload_type):
    value = get(session, blob_id)
    if value is None:
        return None
    return payload_type.from_json_str(value)


def get_vulnerability_blob(session, blob_id) -> VulnerabilityBlob:
    return get_typed(session, blob_id, VulnerabilityBlob)


def get_affected_blob(session, blob_id) -> AffectedPackageBlob:
    return get_typed(session, blob_id, AffectedPackageBlob)
