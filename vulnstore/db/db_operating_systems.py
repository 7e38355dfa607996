from sqlalchemy import func

from vulnstore.common.errors import ValidationError
from vulnstore.db import OperatingSystem
from vulnstore.db.results import FindResult, find_or_insert
from vulnstore.utils import split_version


def _natural_key_query(session, name, major_version, minor_version):
    return session.query(OperatingSystem).filter(
        func.lower(OperatingSystem.name) == name.lower(),
        OperatingSystem.major_version == (major_version or ""),
        OperatingSystem.minor_version == (minor_version or ""),
    )


def find_or_create_os(
    session,
    name,
    major_version="",
    minor_version="",
    release_id="",
    label_version="",
    codename="",
) -> FindResult:
    """
    Resolve by (name, major, minor). When a row already exists its descriptive fields (release id, label, codename)
    are kept as first seen and the incoming values are discarded.
    """
    if not name:
        raise ValidationError("operating system name is required")

    def build():
        return OperatingSystem(
            name=name,
            major_version=major_version or "",
            minor_version=minor_version or "",
            release_id=release_id or "",
            label_version=label_version or "",
            codename=codename or "",
        )

    return find_or_insert(
        session,
        lambda: _natural_key_query(session, name, major_version, minor_version)
        .order_by(OperatingSystem.id)
        .first(),
        build,
        "operating system {} {}.{}".format(name, major_version, minor_version),
    )


def find_or_create_os_from_version(
    session, name, version, release_id="", codename=""
) -> FindResult:
    """
    Same as find_or_create_os for callers holding a single version string, e.g. "8.6.1" or "edge".
    """
    parts = split_version(version)
    return find_or_create_os(
        session,
        name,
        major_version=parts.major,
        minor_version=parts.minor,
        release_id=release_id,
        label_version=parts.label,
        codename=codename,
    )


def find_os(session, name, major_version="", minor_version=""):
    if not name:
        return None
    return (
        _natural_key_query(session, name, major_version, minor_version)
        .order_by(OperatingSystem.id)
        .first()
    )


def find_os_by_name(session, name):
    """
    All releases known for an os name, ordered by id
    """
    if not name:
        return []
    return (
        session.query(OperatingSystem)
        .filter(func.lower(OperatingSystem.name) == name.lower())
        .order_by(OperatingSystem.id)
        .all()
    )


def find_os_by_label(session, name, label_version):
    if not name or not label_version:
        return None
    return (
        session.query(OperatingSystem)
        .filter(
            func.lower(OperatingSystem.name) == name.lower(),
            func.lower(OperatingSystem.label_version) == label_version.lower(),
        )
        .order_by(OperatingSystem.id)
        .first()
    )


def find_os_by_codename(session, name, codename):
    if not name or not codename:
        return None
    return (
        session.query(OperatingSystem)
        .filter(
            func.lower(OperatingSystem.name) == name.lower(),
            func.lower(OperatingSystem.codename) == codename.lower(),
        )
        .order_by(OperatingSystem.id)
        .first()
    )
