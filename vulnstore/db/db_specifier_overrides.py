from sqlalchemy import func

from vulnstore.common.errors import ValidationError
from vulnstore.db import OperatingSystemSpecifierOverride, PackageSpecifierOverride
from vulnstore.db.results import FindResult, find_or_insert


def add_package_override(session, ecosystem, replacement_ecosystem) -> FindResult:
    if not ecosystem:
        raise ValidationError("package specifier override requires an ecosystem")

    def lookup():
        return get_package_override(session, ecosystem)

    return find_or_insert(
        session,
        lookup,
        lambda: PackageSpecifierOverride(
            ecosystem=ecosystem, replacement_ecosystem=replacement_ecosystem
        ),
        "package override {}".format(ecosystem),
    )


def get_package_override(session, ecosystem):
    if not ecosystem:
        return None
    return (
        session.query(PackageSpecifierOverride)
        .filter(func.lower(PackageSpecifierOverride.ecosystem) == ecosystem.lower())
        .first()
    )


def get_package_overrides(session):
    return (
        session.query(PackageSpecifierOverride)
        .order_by(PackageSpecifierOverride.ecosystem)
        .all()
    )


def add_os_override(
    session,
    alias,
    version="",
    version_pattern="",
    codename="",
    replacement_name=None,
    replacement_major_version=None,
    replacement_minor_version=None,
    replacement_label_version=None,
    rolling=False,
) -> FindResult:
    """
    Add an os specifier override, rows are keyed on (alias, version, version_pattern, codename). Validation happens
    on construction, before anything is written.
    """
    override = OperatingSystemSpecifierOverride(
        alias=alias,
        version=version or "",
        version_pattern=version_pattern or "",
        codename=codename or "",
        replacement_name=replacement_name,
        replacement_major_version=replacement_major_version,
        replacement_minor_version=replacement_minor_version,
        replacement_label_version=replacement_label_version,
        rolling=bool(rolling),
    )

    def lookup():
        return (
            session.query(OperatingSystemSpecifierOverride)
            .filter(
                func.lower(OperatingSystemSpecifierOverride.alias) == alias.lower(),
                OperatingSystemSpecifierOverride.version == override.version,
                OperatingSystemSpecifierOverride.version_pattern
                == override.version_pattern,
                func.lower(OperatingSystemSpecifierOverride.codename)
                == override.codename.lower(),
            )
            .first()
        )

    return find_or_insert(
        session,
        lookup,
        lambda: override,
        "os override {}".format(override),
    )


def get_os_overrides(session, alias=None):
    """
    Override rows in insertion order, optionally only those for the given alias
    """
    query = session.query(OperatingSystemSpecifierOverride)
    if alias:
        query = query.filter(
            func.lower(OperatingSystemSpecifierOverride.alias) == alias.lower()
        )
    return query.order_by(OperatingSystemSpecifierOverride.id).all()
