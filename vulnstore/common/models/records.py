"""
Inbound upstream records consumed by the record loader. One VulnerabilityRecord is one advisory from one provider along
with everything it affects.
"""
from marshmallow import fields, post_load, validates_schema

from vulnstore.common.models.blobs import AffectedPackageBlob, VulnerabilityBlob
from vulnstore.common.schemas import (
    JsonSerializable,
    RecordSchema,
    RFC3339DateTime,
    SchemaValidationError,
)
from vulnstore.utils import split_version


class ProviderRecord(JsonSerializable):
    class ProviderRecordV1Schema(RecordSchema):
        id = fields.Str(required=True)
        version = fields.Str(allow_none=True, load_default=None)
        processor = fields.Str(allow_none=True, load_default=None)
        date_captured = RFC3339DateTime(allow_none=True, load_default=None)
        input_digest = fields.Str(allow_none=True, load_default=None)

        @post_load
        def make(self, data, **kwargs):
            return ProviderRecord(**data)

    __schema__ = ProviderRecordV1Schema()

    def __init__(
        self, id=None, version=None, processor=None, date_captured=None, input_digest=None
    ):
        self.id = id
        self.version = version
        self.processor = processor
        self.date_captured = date_captured
        self.input_digest = input_digest


class VulnerabilityDetail(JsonSerializable):
    class VulnerabilityDetailV1Schema(RecordSchema):
        name = fields.Str(required=True)
        status = fields.Str(load_default="active")
        published_date = RFC3339DateTime(allow_none=True, load_default=None)
        modified_date = RFC3339DateTime(allow_none=True, load_default=None)
        withdrawn_date = RFC3339DateTime(allow_none=True, load_default=None)
        aliases = fields.List(fields.Str(), load_default=list)
        blob = fields.Nested(VulnerabilityBlob.VulnerabilityBlobV1Schema, required=True)

        @post_load
        def make(self, data, **kwargs):
            return VulnerabilityDetail(**data)

    __schema__ = VulnerabilityDetailV1Schema()

    def __init__(
        self,
        name=None,
        status="active",
        published_date=None,
        modified_date=None,
        withdrawn_date=None,
        aliases=None,
        blob=None,
    ):
        self.name = name
        self.status = status
        self.published_date = published_date
        self.modified_date = modified_date
        self.withdrawn_date = withdrawn_date
        self.aliases = aliases or []
        self.blob = blob


class PackageRecord(JsonSerializable):
    class PackageRecordV1Schema(RecordSchema):
        ecosystem = fields.Str(required=True)
        name = fields.Str(required=True)
        cpes = fields.List(fields.Str(), load_default=list)

        @post_load
        def make(self, data, **kwargs):
            return PackageRecord(**data)

    __schema__ = PackageRecordV1Schema()

    def __init__(self, ecosystem=None, name=None, cpes=None):
        self.ecosystem = ecosystem
        self.name = name
        self.cpes = cpes or []


class OperatingSystemRecord(JsonSerializable):
    """
    An OS release as reported upstream, either as a single version string (decomposed on load) or as explicit
    major/minor parts.
    """

    class OperatingSystemRecordV1Schema(RecordSchema):
        name = fields.Str(required=True)
        version = fields.Str(allow_none=True, load_default=None, load_only=True)
        major_version = fields.Str(load_default="")
        minor_version = fields.Str(load_default="")
        release_id = fields.Str(load_default="")
        label_version = fields.Str(load_default="")
        codename = fields.Str(load_default="")

        @validates_schema
        def validate_version(self, data, **kwargs):
            if data.get("version") and (
                data.get("major_version") or data.get("minor_version")
            ):
                raise SchemaValidationError(
                    "use either version or major_version/minor_version",
                    field_name="version",
                )

        @post_load
        def make(self, data, **kwargs):
            version = data.pop("version", None)
            if version:
                parts = split_version(version)
                data["major_version"] = parts.major
                data["minor_version"] = parts.minor
                if parts.label and not data.get("label_version"):
                    data["label_version"] = parts.label
            return OperatingSystemRecord(**data)

    __schema__ = OperatingSystemRecordV1Schema()

    def __init__(
        self,
        name=None,
        major_version="",
        minor_version="",
        release_id="",
        label_version="",
        codename="",
    ):
        self.name = name
        self.major_version = major_version or ""
        self.minor_version = minor_version or ""
        self.release_id = release_id or ""
        self.label_version = label_version or ""
        self.codename = codename or ""

    @property
    def version(self):
        if self.label_version:
            return self.label_version
        if self.minor_version:
            return "{}.{}".format(self.major_version, self.minor_version)
        return self.major_version or self.codename


class AffectedPackageRecord(JsonSerializable):
    class AffectedPackageRecordV1Schema(RecordSchema):
        package = fields.Nested(PackageRecord.PackageRecordV1Schema, required=True)
        os = fields.Nested(
            OperatingSystemRecord.OperatingSystemRecordV1Schema,
            allow_none=True,
            load_default=None,
        )
        blob = fields.Nested(
            AffectedPackageBlob.AffectedPackageBlobV1Schema, required=True
        )

        @post_load
        def make(self, data, **kwargs):
            return AffectedPackageRecord(**data)

    __schema__ = AffectedPackageRecordV1Schema()

    def __init__(self, package=None, os=None, blob=None):
        self.package = package
        self.os = os
        self.blob = blob


class AffectedCPERecord(JsonSerializable):
    class AffectedCPERecordV1Schema(RecordSchema):
        cpe = fields.Str(required=True)
        blob = fields.Nested(
            AffectedPackageBlob.AffectedPackageBlobV1Schema, required=True
        )

        @post_load
        def make(self, data, **kwargs):
            return AffectedCPERecord(**data)

    __schema__ = AffectedCPERecordV1Schema()

    def __init__(self, cpe=None, blob=None):
        self.cpe = cpe
        self.blob = blob


class VulnerabilityRecord(JsonSerializable):
    """
    Example:
    {
        "provider": {"id": "github", "version": "1", "processor": "vunnel@0.29.0", "date_captured": "2025-01-08T01:31:27Z"},
        "vulnerability": {
            "name": "GHSA-xxxx-yyyy-zzzz",
            "status": "active",
            "aliases": ["CVE-2024-0001"],
            "blob": {"id": "GHSA-xxxx-yyyy-zzzz", "description": "..."}
        },
        "affected_packages": [
            {"package": {"ecosystem": "npm", "name": "left-pad"}, "blob": {"ranges": [{"version": {"type": "semver", "constraint": "<1.3.0"}}]}}
        ],
        "affected_cpes": []
    }
    """

    class VulnerabilityRecordV1Schema(RecordSchema):
        provider = fields.Nested(ProviderRecord.ProviderRecordV1Schema, required=True)
        vulnerability = fields.Nested(
            VulnerabilityDetail.VulnerabilityDetailV1Schema, required=True
        )
        affected_packages = fields.List(
            fields.Nested(AffectedPackageRecord.AffectedPackageRecordV1Schema),
            load_default=list,
        )
        affected_cpes = fields.List(
            fields.Nested(AffectedCPERecord.AffectedCPERecordV1Schema),
            load_default=list,
        )

        @post_load
        def make(self, data, **kwargs):
            return VulnerabilityRecord(**data)

    __schema__ = VulnerabilityRecordV1Schema()

    def __init__(
        self, provider=None, vulnerability=None, affected_packages=None, affected_cpes=None
    ):
        self.provider = provider
        self.vulnerability = vulnerability
        self.affected_packages = affected_packages or []
        self.affected_cpes = affected_cpes or []

    @property
    def name(self):
        return self.vulnerability.name if self.vulnerability else None
