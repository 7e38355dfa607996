"""
Query-time rewriting of package ecosystems and os-release values onto the identities stored in the packages and
operating_systems tables.
"""
import re
from collections import namedtuple

from vulnstore.db import db_specifier_overrides
from vulnstore.subsys import logger
from vulnstore.utils import split_version

ResolvedOS = namedtuple(
    "ResolvedOS",
    ["name", "major_version", "minor_version", "label_version", "rolling"],
)


def resolve_package_ecosystem(session, ecosystem):
    """
    :return: the replacement ecosystem, or the input unchanged when there is no override for it
    """
    if not ecosystem:
        return ecosystem

    override = db_specifier_overrides.get_package_override(session, ecosystem)
    if override is None or not override.replacement_ecosystem:
        return ecosystem

    logger.spew(
        "resolved package ecosystem {} -> {}".format(
            ecosystem, override.replacement_ecosystem
        )
    )
    return override.replacement_ecosystem


class SpecifierOverrideResolver(object):
    """
    Resolves os-release values (ID, VERSION_ID, VERSION_CODENAME) against the os override table.

    Matching rows share the alias, and a row carrying a codename only applies to that codename. The first row wins
    within each tier, tiers tried in order:
      1. literal version equal to the input version
      2. version_pattern found in the input version
      3. rows with neither a version nor a pattern, applying to every version of the alias
    """

    def __init__(self, session):
        self.session = session

    def candidates(self, alias, codename=None):
        codename = (codename or "").lower()
        return [
            row
            for row in db_specifier_overrides.get_os_overrides(self.session, alias)
            if not row.codename or row.codename.lower() == codename
        ]

    @staticmethod
    def _pattern_matches(row, version):
        try:
            return re.search(row.version_pattern, version) is not None
        except re.error as err:
            # rows are validated on creation, a bad pattern can only come from a db written elsewhere
            logger.warn(
                "skipping os override {} with invalid version_pattern: {}".format(row, err)
            )
            return False

    def match(self, alias, version=None, codename=None):
        rows = self.candidates(alias, codename)
        version = version or ""

        if version:
            for row in rows:
                if row.version and row.version == version:
                    return row

            for row in rows:
                if row.version_pattern and self._pattern_matches(row, version):
                    return row

        for row in rows:
            if not row.version and not row.version_pattern:
                return row

        return None

    def resolve(self, alias, version=None, codename=None) -> ResolvedOS:
        parts = split_version(version)
        resolved = ResolvedOS(
            name=alias,
            major_version=parts.major,
            minor_version=parts.minor,
            label_version=parts.label,
            rolling=False,
        )

        if not alias:
            return resolved

        row = self.match(alias, version, codename)
        if row is None:
            return resolved

        resolved = ResolvedOS(
            name=_replace(row.replacement_name, resolved.name),
            major_version=_replace(
                row.replacement_major_version, resolved.major_version
            ),
            minor_version=_replace(
                row.replacement_minor_version, resolved.minor_version
            ),
            label_version=_replace(
                row.replacement_label_version, resolved.label_version
            ),
            rolling=bool(row.rolling),
        )
        logger.spew(
            "resolved os {} version={} codename={} -> {}".format(
                alias, version, codename, resolved
            )
        )
        return resolved


def _replace(replacement, value):
    return value if replacement is None else replacement


def resolve_os(session, alias, version=None, codename=None) -> ResolvedOS:
    return SpecifierOverrideResolver(session).resolve(alias, version, codename)
