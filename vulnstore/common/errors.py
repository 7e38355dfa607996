"""
Error types raised by the store. Not-found conditions are never errors, lookups return None or empty lists instead.
"""


class VulnStoreError(Exception):
    pass


class ValidationError(VulnStoreError):
    """
    Malformed input rejected before any write. Not retryable without correcting the input.
    """

    pass


class IdentityConflictError(VulnStoreError):
    """
    A natural key resolved to an existing row whose associations contradict the incoming data.
    """

    def __init__(self, message, existing=None, incoming=None):
        self.existing = existing
        self.incoming = incoming
        super().__init__(
            "{} (existing={}, incoming={})".format(message, existing, incoming)
        )


class StorageError(VulnStoreError):
    pass


class BlobDigestError(StorageError):
    def __init__(self, cause):
        self.cause = cause
        super().__init__("unable to compute blob digest: {}".format(cause))


class SchemaVersionError(VulnStoreError):
    def __init__(self, expected, found):
        self.expected = expected
        self.found = found
        super().__init__(
            "incompatible schema: expected model {} but found {}".format(
                expected, found
            )
        )
