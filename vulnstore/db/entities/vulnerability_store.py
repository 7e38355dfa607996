"""
Tables for the vulnerability store: the content-addressed blob store, the normalized dimension tables (providers,
packages, operating systems, cpes), the specifier override tables and the handle tables joining vulnerabilities to
their blobs and to the dimensions they affect.
"""
import re

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from vulnstore.common.errors import ValidationError
from vulnstore.utils import CPE

from .common import Base, UtcDateTime, UtilMixin, now_datetime


class VulnerabilityStatus(object):
    active = "active"
    analyzing = "analyzing"
    rejected = "rejected"
    disputed = "disputed"

    all = (active, analyzing, rejected, disputed)


# core data store


class Blob(Base):
    __tablename__ = "blobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    value = Column(Text, nullable=False)

    def __repr__(self):
        return "<{}(id={}, size={})>".format(
            self.__class__.__name__, self.id, len(self.value or "")
        )


class BlobDigest(Base):
    __tablename__ = "blob_digests"

    id = Column(String, primary_key=True)  # the self describing digest, e.g. blake2b64:0a16...
    blob_id = Column(Integer, ForeignKey(Blob.id), nullable=False)
    blob = relationship(Blob)

    def __repr__(self):
        return "<{}(id={}, blob_id={})>".format(
            self.__class__.__name__, self.id, self.blob_id
        )


# non-domain info


class DBMetadata(Base, UtilMixin):
    __tablename__ = "db_metadata"

    id = Column(Integer, primary_key=True, autoincrement=True)
    build_timestamp = Column(UtcDateTime, nullable=False, default=now_datetime)
    model = Column(Integer, nullable=False)
    revision = Column(Integer, nullable=False)
    addition = Column(Integer, nullable=False)

    @property
    def schema_version(self):
        return self.model, self.revision, self.addition

    def __repr__(self):
        return "<{}(build_timestamp={}, schema=v{}.{}.{})>".format(
            self.__class__.__name__,
            self.build_timestamp,
            self.model,
            self.revision,
            self.addition,
        )


# data source info


class Provider(Base, UtilMixin):
    """
    The upstream data processor responsible for a set of vulnerability records (e.g. "ubuntu" for all Ubuntu Security
    Notices). There is a single row per provider that reflects the latest observed state of that provider.
    """

    __tablename__ = "providers"

    id = Column(String, primary_key=True)
    version = Column(String)
    processor = Column(String)  # the application that processed the data (e.g. "vunnel")
    date_captured = Column(UtcDateTime)  # when the upstream data was pulled and processed
    input_digest = Column(String)  # self describing hash of all input used to build the records

    def __repr__(self):
        return "<{}(id={}, version={}, processor={}, date_captured={}, input_digest={})>".format(
            self.__class__.__name__,
            self.id,
            self.version,
            self.processor,
            self.date_captured,
            self.input_digest,
        )


# vulnerability related search tables


class VulnerabilityHandle(Base):
    """
    Pointer to the core advisory record for a single vulnerability from a specific provider.
    """

    __tablename__ = "vulnerability_handles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    status = Column(String, nullable=False)
    published_date = Column(UtcDateTime, index=True)
    modified_date = Column(UtcDateTime, index=True)
    withdrawn_date = Column(UtcDateTime, index=True)

    provider_id = Column(String, ForeignKey(Provider.id), nullable=False, index=True)
    provider = relationship(Provider)

    blob_id = Column(Integer, ForeignKey(Blob.id), nullable=False, unique=True)

    def __repr__(self):
        return "<{}(id={}, name={}, status={}, provider_id={}, blob_id={})>".format(
            self.__class__.__name__,
            self.id,
            self.name,
            self.status,
            self.provider_id,
            self.blob_id,
        )


class VulnerabilityAlias(Base):
    """
    Directed edge from a vulnerability name to the upstream identifier it was derived from
    (e.g. name=RHSA-2023:1234 alias=CVE-2023-0001, never the reverse).
    """

    __tablename__ = "vulnerability_aliases"

    name = Column(String, primary_key=True)
    alias = Column(String, primary_key=True)

    def __repr__(self):
        return "<{}(name={}, alias={})>".format(
            self.__class__.__name__, self.name, self.alias
        )


# package related search tables


class Package(Base):
    """
    A package name within a known ecosystem, such as "npm" or "deb".
    """

    __tablename__ = "packages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ecosystem = Column(String, nullable=False)
    name = Column(String, nullable=False)

    cpes = relationship("Cpe", back_populates="package", order_by="Cpe.id")

    def __repr__(self):
        return "<{}(id={}, ecosystem={}, name={})>".format(
            self.__class__.__name__, self.id, self.ecosystem, self.name
        )

    def __str__(self):
        return "{}/{}".format(self.ecosystem, self.name)


class PackageSpecifierOverride(Base):
    """
    Static rewrite of a query ecosystem into the ecosystem value stored in the packages table.
    """

    __tablename__ = "package_specifier_overrides"

    ecosystem = Column(String, primary_key=True)
    replacement_ecosystem = Column(String)

    def __repr__(self):
        return "<{}(ecosystem={}, replacement_ecosystem={})>".format(
            self.__class__.__name__, self.ecosystem, self.replacement_ecosystem
        )


class OperatingSystem(Base):
    """
    A specific release of an operating system. The version resolution is relative to what the providers have data
    for, so there may only be a major.minor entry for a distro with major.minor.patch releases.
    """

    __tablename__ = "operating_systems"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)  # the os family name (e.g. "debian")
    release_id = Column(String, nullable=False, default="")
    major_version = Column(String, nullable=False, default="")
    minor_version = Column(String, nullable=False, default="")
    label_version = Column(String, nullable=False, default="")  # non-codename label (e.g. "unstable")
    codename = Column(String, nullable=False, default="")  # e.g. "buster" for debian 10

    def version_number(self):
        if self.minor_version:
            return "{}.{}".format(self.major_version, self.minor_version)
        return self.major_version or ""

    def version(self):
        if self.label_version:
            return self.label_version

        if self.major_version:
            return self.version_number()

        return self.codename or ""

    def __repr__(self):
        return "<{}(id={}, name={}, version={}, release_id={}, codename={})>".format(
            self.__class__.__name__,
            self.id,
            self.name,
            self.version(),
            self.release_id,
            self.codename,
        )

    def __str__(self):
        return "{}@{}".format(self.name, self.version())


class OperatingSystemSpecifierOverride(Base):
    """
    Maps values found in an os-release file (ID, VERSION_ID, VERSION_CODENAME) onto the identity stored in the
    operating_systems table. Version and version_pattern are mutually exclusive.
    """

    __tablename__ = "operating_system_specifier_overrides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    alias = Column(String, nullable=False)
    version = Column(String, nullable=False, default="")
    version_pattern = Column(String, nullable=False, default="")
    codename = Column(String, nullable=False, default="")

    replacement_name = Column(String)
    replacement_major_version = Column(String)
    replacement_minor_version = Column(String)
    replacement_label_version = Column(String)
    rolling = Column(Boolean, nullable=False, default=False)

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.validate()

    def validate(self):
        if self.version and self.version_pattern:
            raise ValidationError(
                "cannot have both version and version_pattern set (alias={}, version={}, version_pattern={})".format(
                    self.alias, self.version, self.version_pattern
                )
            )

        if self.version_pattern:
            try:
                re.compile(self.version_pattern)
            except re.error as err:
                raise ValidationError(
                    "invalid version_pattern {!r} for alias {}: {}".format(
                        self.version_pattern, self.alias, err
                    )
                )

        if not self.alias:
            raise ValidationError("os specifier override requires an alias")

    def __repr__(self):
        return "<{}(alias={}, version={}, version_pattern={}, codename={}, replacement_name={}, rolling={})>".format(
            self.__class__.__name__,
            self.alias,
            self.version,
            self.version_pattern,
            self.codename,
            self.replacement_name,
            self.rolling,
        )


class AffectedPackageHandle(Base):
    """
    A package affected by a vulnerability, optionally scoped to an operating system release.
    """

    __tablename__ = "affected_package_handles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vulnerability_id = Column(
        Integer, ForeignKey(VulnerabilityHandle.id), nullable=False, index=True
    )
    vulnerability = relationship(VulnerabilityHandle)

    operating_system_id = Column(
        Integer, ForeignKey(OperatingSystem.id), nullable=True, index=True
    )
    operating_system = relationship(OperatingSystem)

    package_id = Column(Integer, ForeignKey(Package.id), nullable=False, index=True)
    package = relationship(Package)

    blob_id = Column(Integer, ForeignKey(Blob.id), nullable=False)

    def __repr__(self):
        return "<{}(id={}, vulnerability_id={}, package_id={}, operating_system_id={}, blob_id={})>".format(
            self.__class__.__name__,
            self.id,
            self.vulnerability_id,
            self.package_id,
            self.operating_system_id,
            self.blob_id,
        )


# CPE related search tables


class Cpe(Base):
    """
    A version-less CPE. Rows may belong to a package (a CPE known to identify that package) or stand alone when only
    the CPE is known.
    """

    __tablename__ = "cpes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    package_id = Column(Integer, ForeignKey(Package.id), nullable=True, index=True)
    package = relationship(Package, back_populates="cpes")

    part = Column(String, nullable=False, default="")
    vendor = Column(String, nullable=False, default="")
    product = Column(String, nullable=False, default="")
    edition = Column(String, nullable=False, default="")
    language = Column(String, nullable=False, default="")
    software_edition = Column(String, nullable=False, default="")
    target_hardware = Column(String, nullable=False, default="")
    target_software = Column(String, nullable=False, default="")
    other = Column(String, nullable=False, default="")

    @classmethod
    def from_cpe(cls, cpe, package_id=None):
        return cls(package_id=package_id, **cpe.as_dict())

    @classmethod
    def from_string(cls, cpe_str, package_id=None):
        return cls.from_cpe(CPE.from_cpe23_fs(cpe_str), package_id=package_id)

    def as_cpe(self):
        return CPE(**{f: getattr(self, f) for f in CPE.fields})

    def __str__(self):
        return self.as_cpe().as_cpe23_fs()

    def __repr__(self):
        return "<{}(id={}, package_id={}, cpe={})>".format(
            self.__class__.__name__, self.id, self.package_id, str(self)
        )


class AffectedCPEHandle(Base):
    """
    A CPE affected by a vulnerability where no package ecosystem/name is resolvable (otherwise an
    AffectedPackageHandle is used).
    """

    __tablename__ = "affected_cpe_handles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vulnerability_id = Column(
        Integer, ForeignKey(VulnerabilityHandle.id), nullable=False, index=True
    )
    vulnerability = relationship(VulnerabilityHandle)

    cpe_id = Column(Integer, ForeignKey(Cpe.id), nullable=False, index=True)
    cpe = relationship(Cpe)

    blob_id = Column(Integer, ForeignKey(Blob.id), nullable=False)

    def __repr__(self):
        return "<{}(id={}, vulnerability_id={}, cpe_id={}, blob_id={})>".format(
            self.__class__.__name__,
            self.id,
            self.vulnerability_id,
            self.cpe_id,
            self.blob_id,
        )


# case-insensitive natural keys and lookups. Expression indexes over lower() are enforced the same way by sqlite and
# postgresql.
Index(
    "vulnerability_handles_name_idx",
    func.lower(VulnerabilityHandle.name),
)
Index(
    "vulnerability_handles_status_idx",
    func.lower(VulnerabilityHandle.status),
)
Index(
    "vulnerability_aliases_natural_key_idx",
    func.lower(VulnerabilityAlias.name),
    func.lower(VulnerabilityAlias.alias),
    unique=True,
)
Index(
    "vulnerability_aliases_alias_idx",
    func.lower(VulnerabilityAlias.alias),
)
Index(
    "packages_natural_key_idx",
    func.lower(Package.ecosystem),
    func.lower(Package.name),
    unique=True,
)
Index(
    "packages_name_idx",
    func.lower(Package.name),
)
Index(
    "package_specifier_overrides_ecosystem_idx",
    func.lower(PackageSpecifierOverride.ecosystem),
    unique=True,
)
Index(
    "operating_systems_natural_key_idx",
    func.lower(OperatingSystem.name),
    OperatingSystem.major_version,
    OperatingSystem.minor_version,
    unique=True,
)
Index(
    "operating_system_specifier_overrides_natural_key_idx",
    func.lower(OperatingSystemSpecifierOverride.alias),
    OperatingSystemSpecifierOverride.version,
    OperatingSystemSpecifierOverride.version_pattern,
    func.lower(OperatingSystemSpecifierOverride.codename),
    unique=True,
)
Index(
    "cpes_natural_key_idx",
    *[func.lower(getattr(Cpe, f)) for f in CPE.fields],
    unique=True,
)
Index("cpes_vendor_idx", func.lower(Cpe.vendor))
Index("cpes_product_idx", func.lower(Cpe.product))
