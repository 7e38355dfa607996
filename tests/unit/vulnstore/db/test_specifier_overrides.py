import pytest

from vulnstore.common.errors import ValidationError
from vulnstore.db import (
    OperatingSystemSpecifierOverride,
    db_specifier_overrides,
    read_session_scope,
    session_scope,
)


def test_package_overrides(vulnstore_db):
    with session_scope() as db:
        assert db_specifier_overrides.add_package_override(db, "golang", "go-module").created
        assert db_specifier_overrides.add_package_override(db, "cargo", "rust-crate").created
        assert db_specifier_overrides.add_package_override(db, "GOLANG", "go-module").existing

        with pytest.raises(ValidationError):
            db_specifier_overrides.add_package_override(db, "", "npm")

    with read_session_scope() as db:
        assert db_specifier_overrides.get_package_override(db, "Golang").replacement_ecosystem == "go-module"
        assert db_specifier_overrides.get_package_override(db, "npm") is None
        assert db_specifier_overrides.get_package_override(db, None) is None
        assert [o.ecosystem for o in db_specifier_overrides.get_package_overrides(db)] == [
            "cargo",
            "golang",
        ]


def test_os_overrides(vulnstore_db):
    with session_scope() as db:
        assert db_specifier_overrides.add_os_override(db, "centos", replacement_name="redhat").created
        assert db_specifier_overrides.add_os_override(
            db, "alpine", version_pattern=r"_alpha", replacement_label_version="edge"
        ).created
        assert db_specifier_overrides.add_os_override(db, "alpine", version="3.18", replacement_minor_version="17").created

        # keyed on alias, version, pattern and codename
        assert db_specifier_overrides.add_os_override(db, "CentOS", replacement_name="other").existing

    with read_session_scope() as db:
        alpine = db_specifier_overrides.get_os_overrides(db, "Alpine")
        assert [(o.version, o.version_pattern) for o in alpine] == [("", "_alpha"), ("3.18", "")]
        assert len(db_specifier_overrides.get_os_overrides(db)) == 3

        centos = db_specifier_overrides.get_os_overrides(db, "centos")[0]
        assert centos.replacement_name == "redhat"
        assert centos.replacement_major_version is None
        assert centos.rolling is False


@pytest.mark.parametrize(
    "kwargs",
    [
        {"alias": "alpine", "version": "3.18", "version_pattern": "3\\.18.*"},
        {"alias": "alpine", "version_pattern": "(unclosed"},
        {"alias": ""},
        {"alias": None},
    ],
)
def test_os_override_validation(kwargs):
    with pytest.raises(ValidationError):
        OperatingSystemSpecifierOverride(**kwargs)


def test_invalid_os_override_writes_nothing(vulnstore_db):
    with session_scope() as db:
        with pytest.raises(ValidationError):
            db_specifier_overrides.add_os_override(db, "alpine", version="3.18", version_pattern="3.*")

    with read_session_scope() as db:
        assert db_specifier_overrides.get_os_overrides(db) == []
