from sqlalchemy import func

from vulnstore.common.errors import IdentityConflictError, ValidationError
from vulnstore.db import Cpe, Package
from vulnstore.db.db_cpes import find_cpe, to_cpe
from vulnstore.db.results import FindResult, find_or_insert
from vulnstore.subsys import logger
from vulnstore.utils import CPE


def _natural_key_query(session, ecosystem, name):
    return session.query(Package).filter(
        func.lower(Package.ecosystem) == ecosystem.lower(),
        func.lower(Package.name) == name.lower(),
    )


def find_package(session, ecosystem, name):
    if not ecosystem or not name:
        return None
    return _natural_key_query(session, ecosystem, name).order_by(Package.id).first()


def find_packages_by_name(session, name):
    if not name:
        return []
    return (
        session.query(Package)
        .filter(func.lower(Package.name) == name.lower())
        .order_by(Package.id)
        .all()
    )


def find_or_create_package(session, ecosystem, name, cpes=None) -> FindResult:
    """
    Two phase resolution: the package is resolved (or created) first, then each supplied CPE is resolved against it.

    A CPE owned by another package is a conflict that aborts the whole operation. A CPE that exists without an owner
    is attached to this package. New CPEs are created and attached. The returned entity is always the package row
    holding the natural key, with its cpes collection reflecting any newly attached rows.

    :param session:
    :param ecosystem:
    :param name:
    :param cpes: iterable of CPE strings, field dicts or CPE objects
    :return: FindResult
    """
    if not ecosystem or not name:
        raise ValidationError(
            "package requires both ecosystem and name (ecosystem={!r}, name={!r})".format(
                ecosystem, name
            )
        )

    # parse everything before any write
    incoming_cpes = []
    for c in cpes or []:
        parsed = to_cpe(c)
        if parsed not in incoming_cpes:
            incoming_cpes.append(parsed)

    result = find_or_insert(
        session,
        lambda: _natural_key_query(session, ecosystem, name).order_by(Package.id).first(),
        lambda: Package(ecosystem=ecosystem, name=name),
        "package {}/{}".format(ecosystem, name),
    )
    package = result.entity

    if incoming_cpes:
        for cpe in incoming_cpes:
            _attach_cpe(session, package, cpe)
        session.expire(package, ["cpes"])

    return result


def _attach_cpe(session, package, cpe: CPE):
    result = find_or_insert(
        session,
        lambda: find_cpe(session, cpe),
        lambda: Cpe.from_cpe(cpe, package_id=package.id),
        "cpe {} for package {}".format(cpe, package),
    )
    if result.created:
        return result

    existing = result.entity
    if existing.package_id is None:
        logger.warn(
            "CPE exists but was not associated with an already existing package until now: cpe={} pkg={}".format(
                existing, package
            )
        )
        existing.package_id = package.id
        session.flush()
    elif existing.package_id != package.id:
        raise IdentityConflictError(
            "CPE already exists for a different package",
            existing="cpe={} package_id={}".format(existing, existing.package_id),
            incoming="cpe={} package={} package_id={}".format(cpe, package, package.id),
        )

    return result
