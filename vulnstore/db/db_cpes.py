from sqlalchemy import func

from vulnstore.common.errors import IdentityConflictError, ValidationError
from vulnstore.db import Cpe
from vulnstore.db.results import FindResult, find_or_insert
from vulnstore.utils import CPE


def to_cpe(value):
    """
    Coerce a CPE string, a dict of the nine fields, a Cpe row or a CPE object into a CPE object.
    """
    if isinstance(value, CPE):
        return value
    elif isinstance(value, Cpe):
        return value.as_cpe()
    elif isinstance(value, str):
        return CPE.from_cpe23_fs(value)
    elif isinstance(value, dict):
        unknown = set(value.keys()) - set(CPE.fields)
        if unknown:
            raise ValidationError(
                "invalid CPE: unknown fields {}".format(sorted(unknown))
            )
        return CPE(**value)

    raise ValidationError("invalid CPE: {!r}".format(value))


def _natural_key_query(session, cpe):
    return session.query(Cpe).filter(
        *[func.lower(getattr(Cpe, f)) == getattr(cpe, f).lower() for f in CPE.fields]
    )


def find_cpe(session, cpe):
    """
    Case-insensitive lookup on all nine fields.

    :param cpe: CPE string, field dict or CPE object
    :return: Cpe row or None
    """
    cpe = to_cpe(cpe)
    return _natural_key_query(session, cpe).order_by(Cpe.id).first()


def find_cpes_by_product(session, vendor=None, product=None):
    query = session.query(Cpe)
    if vendor:
        query = query.filter(func.lower(Cpe.vendor) == vendor.lower())
    if product:
        query = query.filter(func.lower(Cpe.product) == product.lower())
    return query.order_by(Cpe.id).all()


def find_or_create_cpe(session, cpe, package_id=None) -> FindResult:
    """
    An existing CPE keeps its package association. Asking for it on behalf of a different package is a conflict, a
    CPE cannot belong to two packages.
    """
    cpe = to_cpe(cpe)

    result = find_or_insert(
        session,
        lambda: _natural_key_query(session, cpe).order_by(Cpe.id).first(),
        lambda: Cpe.from_cpe(cpe, package_id=package_id),
        "cpe {}".format(cpe),
    )

    if result.existing and package_id is not None:
        existing = result.entity
        if existing.package_id != package_id:
            raise IdentityConflictError(
                "CPE already exists for a different package",
                existing="cpe={} package_id={}".format(existing, existing.package_id),
                incoming="cpe={} package_id={}".format(cpe, package_id),
            )

    return result
