"""
Vulnerability handles, aliases and the affected package/cpe join rows.
"""
from sqlalchemy import func, or_, select
from sqlalchemy.orm import joinedload

from vulnstore.common.errors import IdentityConflictError, ValidationError
from vulnstore.db import (
    AffectedCPEHandle,
    AffectedPackageHandle,
    Package,
    VulnerabilityAlias,
    VulnerabilityHandle,
    VulnerabilityStatus,
)
from vulnstore.db import db_blobs
from vulnstore.db.results import FindResult, find_or_insert
from vulnstore.subsys import logger


def normalize_status(status):
    if not status:
        return VulnerabilityStatus.active

    normalized = status.strip().lower()
    if normalized not in VulnerabilityStatus.all:
        raise ValidationError(
            "invalid vulnerability status {!r}, must be one of {}".format(
                status, list(VulnerabilityStatus.all)
            )
        )
    return normalized


def add_vulnerability(
    session,
    name,
    status,
    provider_id,
    blob,
    published_date=None,
    modified_date=None,
    withdrawn_date=None,
) -> FindResult:
    """
    Store the vulnerability blob and create the handle pointing at it. Each blob backs at most one handle, so
    re-ingesting an identical record resolves to the handle already holding the blob.

    :return: FindResult of the VulnerabilityHandle
    """
    if not name:
        raise ValidationError("vulnerability name is required")
    if not provider_id:
        raise ValidationError("vulnerability {} has no provider".format(name))

    status = normalize_status(status)
    blob_id = db_blobs.put(session, blob)

    def lookup():
        return (
            session.query(VulnerabilityHandle)
            .filter(VulnerabilityHandle.blob_id == blob_id)
            .first()
        )

    def build():
        return VulnerabilityHandle(
            name=name,
            status=status,
            provider_id=provider_id,
            blob_id=blob_id,
            published_date=published_date,
            modified_date=modified_date,
            withdrawn_date=withdrawn_date,
        )

    result = find_or_insert(
        session, lookup, build, "vulnerability {} ({})".format(name, provider_id)
    )
    if result.created:
        return result

    existing = result.entity
    if existing.name.lower() != name.lower() or existing.provider_id != provider_id:
        raise IdentityConflictError(
            "vulnerability blob already referenced by another handle",
            existing="name={} provider={} blob_id={}".format(
                existing.name, existing.provider_id, existing.blob_id
            ),
            incoming="name={} provider={} blob_id={}".format(
                name, provider_id, blob_id
            ),
        )

    logger.debug(
        "vulnerability {} from {} already stored as handle {}".format(
            name, provider_id, existing.id
        )
    )
    return result


def add_alias(session, name, alias) -> FindResult:
    if not name or not alias:
        raise ValidationError(
            "alias requires both name and alias (name={!r}, alias={!r})".format(
                name, alias
            )
        )

    def lookup():
        return (
            session.query(VulnerabilityAlias)
            .filter(
                func.lower(VulnerabilityAlias.name) == name.lower(),
                func.lower(VulnerabilityAlias.alias) == alias.lower(),
            )
            .first()
        )

    return find_or_insert(
        session,
        lookup,
        lambda: VulnerabilityAlias(name=name, alias=alias),
        "alias {} -> {}".format(name, alias),
    )


def validate_alias(session, name, alias):
    """
    An alias points from a derived name to its upstream identifier. Self references and reversed edges are rejected.
    """
    if name.lower() == alias.lower():
        raise ValidationError("vulnerability {} cannot alias itself".format(name))

    reverse = (
        session.query(VulnerabilityAlias)
        .filter(
            func.lower(VulnerabilityAlias.name) == alias.lower(),
            func.lower(VulnerabilityAlias.alias) == name.lower(),
        )
        .first()
    )
    if reverse is not None:
        raise ValidationError(
            "alias {} -> {} would form a cycle with existing alias {} -> {}".format(
                name, alias, reverse.name, reverse.alias
            )
        )


def get_aliases(session, name):
    """
    Upstream identifiers the named vulnerability was derived from
    """
    return [
        a.alias
        for a in session.query(VulnerabilityAlias)
        .filter(func.lower(VulnerabilityAlias.name) == name.lower())
        .order_by(VulnerabilityAlias.alias)
    ]


def add_affected_package(
    session, vulnerability_id, package_id, blob, operating_system_id=None
) -> AffectedPackageHandle:
    handle = AffectedPackageHandle(
        vulnerability_id=vulnerability_id,
        package_id=package_id,
        operating_system_id=operating_system_id,
        blob_id=db_blobs.put(session, blob),
    )
    session.add(handle)
    session.flush()
    return handle


def add_affected_cpe(session, vulnerability_id, cpe_id, blob) -> AffectedCPEHandle:
    handle = AffectedCPEHandle(
        vulnerability_id=vulnerability_id,
        cpe_id=cpe_id,
        blob_id=db_blobs.put(session, blob),
    )
    session.add(handle)
    session.flush()
    return handle


def find_affected_package(
    session, vulnerability_id, package_id, blob, operating_system_id=None
):
    """
    The affected package handle linking exactly this vulnerability, package, os and detail, if one exists
    """
    blob_id = db_blobs.find_id(session, blob)
    if blob_id is None:
        return None

    query = session.query(AffectedPackageHandle).filter(
        AffectedPackageHandle.vulnerability_id == vulnerability_id,
        AffectedPackageHandle.package_id == package_id,
        AffectedPackageHandle.blob_id == blob_id,
    )
    if operating_system_id is None:
        query = query.filter(AffectedPackageHandle.operating_system_id.is_(None))
    else:
        query = query.filter(
            AffectedPackageHandle.operating_system_id == operating_system_id
        )
    return query.first()


def find_affected_cpe(session, vulnerability_id, cpe_id, blob):
    blob_id = db_blobs.find_id(session, blob)
    if blob_id is None:
        return None

    return (
        session.query(AffectedCPEHandle)
        .filter(
            AffectedCPEHandle.vulnerability_id == vulnerability_id,
            AffectedCPEHandle.cpe_id == cpe_id,
            AffectedCPEHandle.blob_id == blob_id,
        )
        .first()
    )


def get_vulnerabilities(
    session, name=None, provider_id=None, statuses=None, include_aliases=False
):
    """
    Vulnerability handles, case-insensitive by name. With include_aliases, handles whose name was derived from the
    given name (e.g. the GHSA and distro advisories for a CVE) are included.
    """
    query = session.query(VulnerabilityHandle).options(
        joinedload(VulnerabilityHandle.provider)
    )

    if name:
        if include_aliases:
            aliased_names = select(func.lower(VulnerabilityAlias.name)).where(
                func.lower(VulnerabilityAlias.alias) == name.lower()
            )
            query = query.filter(
                or_(
                    func.lower(VulnerabilityHandle.name) == name.lower(),
                    func.lower(VulnerabilityHandle.name).in_(aliased_names),
                )
            )
        else:
            query = query.filter(
                func.lower(VulnerabilityHandle.name) == name.lower()
            )
    if provider_id:
        query = query.filter(VulnerabilityHandle.provider_id == provider_id)
    if statuses:
        query = query.filter(
            VulnerabilityHandle.status.in_([normalize_status(s) for s in statuses])
        )

    return query.order_by(VulnerabilityHandle.id).all()


def _lowered(names):
    return sorted({n.lower() for n in names if n})


def get_affected_packages(
    session, vulnerability_names=None, package_ids=None, operating_system_ids=None
):
    """
    Affected package handles with their vulnerability, provider, package (and its cpes) and os loaded. Each filter
    is skipped when None, an empty list matches nothing.
    """
    query = session.query(AffectedPackageHandle).options(
        joinedload(AffectedPackageHandle.vulnerability).joinedload(
            VulnerabilityHandle.provider
        ),
        joinedload(AffectedPackageHandle.package).joinedload(Package.cpes),
        joinedload(AffectedPackageHandle.operating_system),
    )

    if vulnerability_names is not None:
        query = query.join(AffectedPackageHandle.vulnerability).filter(
            func.lower(VulnerabilityHandle.name).in_(_lowered(vulnerability_names))
        )
    if package_ids is not None:
        query = query.filter(AffectedPackageHandle.package_id.in_(list(package_ids)))
    if operating_system_ids is not None:
        query = query.filter(
            AffectedPackageHandle.operating_system_id.in_(list(operating_system_ids))
        )

    return query.order_by(AffectedPackageHandle.id).all()


def get_affected_cpes(session, vulnerability_names=None, cpe_ids=None):
    query = session.query(AffectedCPEHandle).options(
        joinedload(AffectedCPEHandle.vulnerability).joinedload(
            VulnerabilityHandle.provider
        ),
        joinedload(AffectedCPEHandle.cpe),
    )

    if vulnerability_names is not None:
        query = query.join(AffectedCPEHandle.vulnerability).filter(
            func.lower(VulnerabilityHandle.name).in_(_lowered(vulnerability_names))
        )
    if cpe_ids is not None:
        query = query.filter(AffectedCPEHandle.cpe_id.in_(list(cpe_ids)))

    return query.order_by(AffectedCPEHandle.id).all()
