"""
Payloads stored in the blob store. Handles point at one of these, and identical payloads are stored once.
"""
from marshmallow import fields, post_load

from vulnstore.common.schemas import JsonSerializable, RecordSchema


class Reference(JsonSerializable):
    class ReferenceV1Schema(RecordSchema):
        url = fields.Str(required=True)
        tags = fields.List(fields.Str(), load_default=list)

        @post_load
        def make(self, data, **kwargs):
            return Reference(**data)

    __schema__ = ReferenceV1Schema()

    def __init__(self, url=None, tags=None):
        self.url = url
        self.tags = tags or []


class Severity(JsonSerializable):
    """
    A severity assertion. value is a free-form string or a CVSS vector/score dict depending on the scheme.
    """

    class SeverityV1Schema(RecordSchema):
        scheme = fields.Str(required=True)  # e.g. "CVSS", "HML", "CHMLN"
        value = fields.Raw(required=True)
        source = fields.Str(allow_none=True, load_default=None)
        rank = fields.Int(load_default=0)

        @post_load
        def make(self, data, **kwargs):
            return Severity(**data)

    __schema__ = SeverityV1Schema()

    def __init__(self, scheme=None, value=None, source=None, rank=0):
        self.scheme = scheme
        self.value = value
        self.source = source
        self.rank = rank


class VulnerabilityBlob(JsonSerializable):
    class VulnerabilityBlobV1Schema(RecordSchema):
        id = fields.Str(required=True)
        assigners = fields.List(fields.Str(), load_default=list)
        description = fields.Str(load_default="")
        references = fields.List(
            fields.Nested(Reference.ReferenceV1Schema), load_default=list
        )
        aliases = fields.List(fields.Str(), load_default=list)
        severities = fields.List(
            fields.Nested(Severity.SeverityV1Schema), load_default=list
        )

        @post_load
        def make(self, data, **kwargs):
            return VulnerabilityBlob(**data)

    __schema__ = VulnerabilityBlobV1Schema()

    def __init__(
        self,
        id=None,
        assigners=None,
        description="",
        references=None,
        aliases=None,
        severities=None,
    ):
        self.id = id
        self.assigners = assigners or []
        self.description = description or ""
        self.references = references or []
        self.aliases = aliases or []
        self.severities = severities or []


class Qualifiers(JsonSerializable):
    class QualifiersV1Schema(RecordSchema):
        rpm_modularity = fields.Str(allow_none=True, load_default=None)
        platform_cpes = fields.List(fields.Str(), load_default=list)

        @post_load
        def make(self, data, **kwargs):
            return Qualifiers(**data)

    __schema__ = QualifiersV1Schema()

    def __init__(self, rpm_modularity=None, platform_cpes=None):
        self.rpm_modularity = rpm_modularity
        self.platform_cpes = platform_cpes or []


class AffectedVersion(JsonSerializable):
    class AffectedVersionV1Schema(RecordSchema):
        type = fields.Str(load_default="")  # version format, e.g. "semver", "rpm", "deb"
        constraint = fields.Str(load_default="")  # e.g. ">= 1.0, < 1.4.2"

        @post_load
        def make(self, data, **kwargs):
            return AffectedVersion(**data)

    __schema__ = AffectedVersionV1Schema()

    def __init__(self, type="", constraint=""):
        self.type = type
        self.constraint = constraint


class Fix(JsonSerializable):
    class FixV1Schema(RecordSchema):
        version = fields.Str(load_default="")
        state = fields.Str(load_default="")  # e.g. "fixed", "not-fixed", "wont-fix"
        detail = fields.Dict(allow_none=True, load_default=None)

        @post_load
        def make(self, data, **kwargs):
            return Fix(**data)

    __schema__ = FixV1Schema()

    def __init__(self, version="", state="", detail=None):
        self.version = version
        self.state = state
        self.detail = detail


class AffectedRange(JsonSerializable):
    class AffectedRangeV1Schema(RecordSchema):
        version = fields.Nested(
            AffectedVersion.AffectedVersionV1Schema, load_default=None, allow_none=True
        )
        fix = fields.Nested(Fix.FixV1Schema, load_default=None, allow_none=True)

        @post_load
        def make(self, data, **kwargs):
            return AffectedRange(**data)

    __schema__ = AffectedRangeV1Schema()

    def __init__(self, version=None, fix=None):
        self.version = version
        self.fix = fix


class AffectedPackageBlob(JsonSerializable):
    """
    Detail for an affected package or affected CPE handle.
    """

    class AffectedPackageBlobV1Schema(RecordSchema):
        cves = fields.List(fields.Str(), load_default=list)
        qualifiers = fields.Nested(
            Qualifiers.QualifiersV1Schema, load_default=None, allow_none=True
        )
        ranges = fields.List(
            fields.Nested(AffectedRange.AffectedRangeV1Schema), load_default=list
        )

        @post_load
        def make(self, data, **kwargs):
            return AffectedPackageBlob(**data)

    __schema__ = AffectedPackageBlobV1Schema()

    def __init__(self, cves=None, qualifiers=None, ranges=None):
        self.cves = cves or []
        self.qualifiers = qualifiers
        self.ranges = ranges or []
