"""
Read-only query facade over a built vulnerability database. Every call opens its own non-committing session and
returns detached rows with the attributes needed by callers already loaded.
"""
import re
from dataclasses import dataclass, field
from typing import List, Optional

from packageurl import PackageURL

from vulnstore.common.errors import ValidationError
from vulnstore.common.models.blobs import AffectedPackageBlob, VulnerabilityBlob
from vulnstore.db import (
    AffectedCPEHandle,
    AffectedPackageHandle,
    Cpe,
    OperatingSystem,
    Package,
    db_blobs,
    db_cpes,
    db_metadata,
    db_operating_systems,
    db_packages,
    db_vulnerabilities,
    read_session_scope,
)
from vulnstore.db.entities import upgrade
from vulnstore.engine import namespaces, overrides
from vulnstore.subsys import logger
from vulnstore.utils import CPE

CPE_PREFIX = "cpe:"
PURL_PREFIX = "pkg:"
MAVEN_PURL_TYPE = "maven"

# purl types whose namespace names the distro rather than part of the package
OS_PURL_TYPES = {"deb", "rpm", "apk", "alpm"}

# advisory id prefixes recognized regardless of case
KNOWN_VULNERABILITY_PREFIXES = (
    "cve-",
    "ghsa-",
    "alas-",
    "alas2-",
    "alas2023-",
    "rhsa-",
    "elsa-",
    "dsa-",
    "dla-",
    "usn-",
    "pysec-",
    "rustsec-",
)

# any other upper case advisory style id, e.g. ALSA-2023:1234 or SUSE-SU-2024:0001-1
VULNERABILITY_ID_PATTERN = re.compile(r"^[A-Z][A-Z0-9]+-[A-Za-z0-9][A-Za-z0-9:._-]*$")


@dataclass
class SearchArgs:
    packages: List[str] = field(default_factory=list)
    vulnerability_ids: List[str] = field(default_factory=list)


def is_vulnerability_id(arg):
    return arg.lower().startswith(KNOWN_VULNERABILITY_PREFIXES) or bool(
        VULNERABILITY_ID_PATTERN.match(arg)
    )


def parse_search_args(args) -> SearchArgs:
    """
    Classify free-form search arguments into package specifiers (CPEs, PURLs and plain names) and vulnerability ids.

    :param args: iterable of strings
    :return: SearchArgs
    """
    result = SearchArgs()
    for arg in args or []:
        arg = arg.strip()
        if not arg:
            continue

        if arg.lower().startswith(CPE_PREFIX):
            # raises ValidationError("invalid CPE: ...")
            CPE.from_cpe23_fs(arg)
            result.packages.append(arg)
        elif arg.lower().startswith(PURL_PREFIX):
            result.packages.append(arg)
        elif is_vulnerability_id(arg):
            result.vulnerability_ids.append(arg)
        else:
            result.packages.append(arg)

    return result


@dataclass
class AffectedPackageInfo:
    vulnerability: str
    provider: str
    namespace: str
    package: Package
    operating_system: Optional[OperatingSystem]
    detail: AffectedPackageBlob
    handle: AffectedPackageHandle = field(repr=False)


@dataclass
class AffectedCPEInfo:
    vulnerability: str
    provider: str
    namespace: str
    cpe: Cpe
    detail: AffectedPackageBlob
    handle: AffectedCPEHandle = field(repr=False)


class VulnerabilityStore(object):
    """
    Lookups by identifier: namespaces, packages, operating systems, cpes, vulnerabilities and the handles joining
    them. Not-found is an empty result, never an error.
    """

    def find_namespace(self, provider, ecosystem=None, os_name=None, os_version=None):
        return namespaces.namespace(
            provider, ecosystem=ecosystem, os_name=os_name, os_version=os_version
        )

    def resolve_package_ecosystem(self, ecosystem):
        with read_session_scope() as db:
            return overrides.resolve_package_ecosystem(db, ecosystem)

    def resolve_os(self, alias, version=None, codename=None):
        with read_session_scope() as db:
            return overrides.resolve_os(db, alias, version=version, codename=codename)

    def find_package(self, ecosystem, name) -> Optional[Package]:
        with read_session_scope() as db:
            return self._find_package(db, ecosystem, name)

    @staticmethod
    def _find_package(db, ecosystem, name):
        ecosystem = overrides.resolve_package_ecosystem(db, ecosystem)
        package = db_packages.find_package(db, ecosystem, name)
        if package is not None:
            # load before detaching
            package.cpes
        return package

    def find_os(self, name, major_version="", minor_version="") -> Optional[OperatingSystem]:
        with read_session_scope() as db:
            return db_operating_systems.find_os(db, name, major_version, minor_version)

    def find_os_by_specifier(self, name, version=None, codename=None) -> List[OperatingSystem]:
        with read_session_scope() as db:
            return self._find_os_by_specifier(db, name, version, codename)

    @staticmethod
    def _find_os_by_specifier(db, name, version=None, codename=None):
        """
        Resolve os-release style values into the stored releases they correspond to.

        Rolling distros match every release stored under the name. Labels (e.g. "edge") match on label_version. A
        major.minor that is not stored falls back to the major release, some providers only publish per major version.
        """
        resolved = overrides.resolve_os(db, name, version=version, codename=codename)
        if not resolved.name:
            return []

        if resolved.rolling:
            return db_operating_systems.find_os_by_name(db, resolved.name)

        if resolved.label_version:
            found = db_operating_systems.find_os_by_label(
                db, resolved.name, resolved.label_version
            )
            return [found] if found else []

        if resolved.major_version:
            found = db_operating_systems.find_os(
                db, resolved.name, resolved.major_version, resolved.minor_version
            )
            if found is None and resolved.minor_version:
                found = db_operating_systems.find_os(db, resolved.name, resolved.major_version)
            return [found] if found else []

        if codename:
            found = db_operating_systems.find_os_by_codename(db, resolved.name, codename)
            return [found] if found else []

        return db_operating_systems.find_os_by_name(db, resolved.name)

    def find_cpe(self, cpe=None, **fields) -> Optional[Cpe]:
        """
        :param cpe: CPE string or CPE object, or pass the nine fields as keyword args
        """
        if cpe is None:
            cpe = fields
        with read_session_scope() as db:
            return db_cpes.find_cpe(db, cpe)

    def get_blob(self, blob_id) -> Optional[str]:
        with read_session_scope() as db:
            return db_blobs.get(db, blob_id)

    def get_vulnerability_blob(self, blob_id) -> Optional[VulnerabilityBlob]:
        with read_session_scope() as db:
            return db_blobs.get_vulnerability_blob(db, blob_id)

    def get_vulnerabilities(self, name, include_aliases=False, provider_id=None):
        with read_session_scope() as db:
            return db_vulnerabilities.get_vulnerabilities(
                db, name=name, provider_id=provider_id, include_aliases=include_aliases
            )

    def get_aliases(self, name) -> List[str]:
        with read_session_scope() as db:
            return db_vulnerabilities.get_aliases(db, name)

    def get_affected_packages(
        self,
        vulnerability=None,
        ecosystem=None,
        package_name=None,
        os_name=None,
        os_version=None,
        os_codename=None,
        cpe=None,
    ) -> List[AffectedPackageInfo]:
        """
        Affected packages, optionally narrowed by vulnerability name, package (ecosystem and/or name, or a cpe the
        package owns) and os release.
        """
        with read_session_scope() as db:
            package_ids = None
            if package_name:
                if ecosystem:
                    package = self._find_package(db, ecosystem, package_name)
                    package_ids = [package.id] if package else []
                else:
                    package_ids = [
                        p.id for p in db_packages.find_packages_by_name(db, package_name)
                    ]

            if cpe is not None:
                found = db_cpes.find_cpe(db, cpe)
                owner_ids = [found.package_id] if found and found.package_id else []
                package_ids = (
                    owner_ids
                    if package_ids is None
                    else [i for i in package_ids if i in owner_ids]
                )

            os_ids = None
            if os_name:
                os_ids = [
                    o.id
                    for o in self._find_os_by_specifier(
                        db, os_name, version=os_version, codename=os_codename
                    )
                ]

            if package_ids == [] or os_ids == []:
                return []

            handles = db_vulnerabilities.get_affected_packages(
                db,
                vulnerability_names=[vulnerability] if vulnerability else None,
                package_ids=package_ids,
                operating_system_ids=os_ids,
            )

            return [
                AffectedPackageInfo(
                    vulnerability=h.vulnerability.name,
                    provider=h.vulnerability.provider_id,
                    namespace=namespaces.namespace_for_affected_package(h),
                    package=h.package,
                    operating_system=h.operating_system,
                    detail=db_blobs.get_affected_blob(db, h.blob_id),
                    handle=h,
                )
                for h in handles
            ]

    def get_affected_cpes(self, vulnerability=None, cpe=None) -> List[AffectedCPEInfo]:
        with read_session_scope() as db:
            cpe_ids = None
            if cpe is not None:
                found = db_cpes.find_cpe(db, cpe)
                if found is None:
                    return []
                cpe_ids = [found.id]

            handles = db_vulnerabilities.get_affected_cpes(
                db,
                vulnerability_names=[vulnerability] if vulnerability else None,
                cpe_ids=cpe_ids,
            )

            return [
                AffectedCPEInfo(
                    vulnerability=h.vulnerability.name,
                    provider=h.vulnerability.provider_id,
                    namespace=namespaces.namespace_for_affected_cpe(h),
                    cpe=h.cpe,
                    detail=db_blobs.get_affected_blob(db, h.blob_id),
                    handle=h,
                )
                for h in handles
            ]

    def get_metadata(self):
        with read_session_scope() as db:
            return db_metadata.get(db)

    def check_compatibility(self, expected=None):
        """
        Raises SchemaVersionError unless the db was built with a schema this code can read
        """
        with read_session_scope() as db:
            return upgrade.check_compatibility(db, expected=expected)

    def search(self, args):
        """
        Vulnerabilities for free-form search arguments, see parse_search_args()

        :return: tuple of (affected packages, affected cpes) results
        """
        parsed = parse_search_args(args)
        names = parsed.vulnerability_ids

        affected_packages = []
        affected_cpes = []
        targets = parsed.packages or [None]
        vulns = names or [None]

        for target in targets:
            for vuln in vulns:
                if target is None:
                    affected_packages.extend(self.get_affected_packages(vulnerability=vuln))
                    affected_cpes.extend(self.get_affected_cpes(vulnerability=vuln))
                elif target.lower().startswith(CPE_PREFIX):
                    affected_packages.extend(
                        self.get_affected_packages(vulnerability=vuln, cpe=target)
                    )
                    affected_cpes.extend(
                        self.get_affected_cpes(vulnerability=vuln, cpe=target)
                    )
                elif target.lower().startswith(PURL_PREFIX):
                    ecosystem, name = parse_purl(target)
                    affected_packages.extend(
                        self.get_affected_packages(
                            vulnerability=vuln, ecosystem=ecosystem, package_name=name
                        )
                    )
                else:
                    affected_packages.extend(
                        self.get_affected_packages(vulnerability=vuln, package_name=target)
                    )

        logger.debug(
            "search {} matched {} affected packages and {} affected cpes".format(
                args, len(affected_packages), len(affected_cpes)
            )
        )
        return affected_packages, affected_cpes


def parse_purl(purl):
    """
    Ecosystem (purl type) and package name of a package url, e.g. pkg:npm/%40scope/name@1.0.0 -> ("npm", "@scope/name").
    Maven names are stored as group:artifact. For os package types the namespace is the distro vendor and not part of
    the name. Qualifiers, subpath and version are ignored.
    """
    if not purl or not purl.lower().startswith(PURL_PREFIX):
        raise ValidationError("invalid PURL: {}".format(purl))

    try:
        parsed = PackageURL.from_string(PURL_PREFIX + purl[len(PURL_PREFIX):])
    except ValueError as err:
        raise ValidationError("invalid PURL: {}: {}".format(purl, err)) from err

    purl_type = parsed.type.lower()
    if not parsed.namespace or purl_type in OS_PURL_TYPES:
        name = parsed.name
    elif purl_type == MAVEN_PURL_TYPE:
        name = "{}:{}".format(parsed.namespace, parsed.name)
    else:
        name = "{}/{}".format(parsed.namespace, parsed.name)

    return purl_type, name
