import pytest
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from vulnstore.common.errors import StorageError
from vulnstore.db import Package, read_session_scope, session_scope
from vulnstore.db.entities.exceptions import is_unique_violation
from vulnstore.db.results import FindResult, find_or_insert


def lookup_package(db, ecosystem, name):
    return (
        db.query(Package)
        .filter(
            func.lower(Package.ecosystem) == ecosystem.lower(),
            func.lower(Package.name) == name.lower(),
        )
        .first()
    )


class StaleLookup:
    """
    Misses the first time it is called, as if a concurrent writer inserted the row right after the lookup
    """

    def __init__(self, db, ecosystem, name):
        self.db = db
        self.ecosystem = ecosystem
        self.name = name
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls == 1:
            return None
        return lookup_package(self.db, self.ecosystem, self.name)


def test_find_or_insert_created(vulnstore_db):
    with session_scope() as db:
        result = find_or_insert(
            db,
            lambda: lookup_package(db, "npm", "left-pad"),
            lambda: Package(ecosystem="npm", name="left-pad"),
            "package npm/left-pad",
        )
        assert result.created
        assert result.id is not None

        again = find_or_insert(
            db,
            lambda: lookup_package(db, "NPM", "Left-Pad"),
            lambda: Package(ecosystem="NPM", name="Left-Pad"),
            "package NPM/Left-Pad",
        )
        assert again == FindResult.of_existing(result.entity)


def test_unique_violation_retries_as_lookup(vulnstore_db):
    with session_scope() as db:
        db.add(Package(ecosystem="npm", name="left-pad"))
        db.flush()

        lookup = StaleLookup(db, "npm", "left-pad")
        result = find_or_insert(
            db,
            lookup,
            lambda: Package(ecosystem="NPM", name="Left-Pad"),
            "package NPM/Left-Pad",
        )

        assert lookup.calls == 2
        assert result.existing
        assert result.entity.name == "left-pad"

    # only the savepoint was rolled back, the enclosing transaction committed
    with read_session_scope() as db:
        assert db.query(Package).count() == 1


def test_unique_violation_without_existing_row(vulnstore_db):
    with session_scope() as db:
        db.add(Package(ecosystem="npm", name="left-pad"))
        db.flush()

        with pytest.raises(StorageError) as err:
            find_or_insert(
                db,
                lambda: None,
                lambda: Package(ecosystem="NPM", name="Left-Pad"),
                "package NPM/Left-Pad",
            )
        assert "no existing row found" in str(err.value)
        assert isinstance(err.value.__cause__, IntegrityError)


def test_other_integrity_error_is_storage_error(vulnstore_db):
    with session_scope() as db:
        with pytest.raises(StorageError) as err:
            find_or_insert(
                db,
                lambda: None,
                lambda: Package(ecosystem="npm", name=None),
                "package npm/None",
            )

        cause = err.value.__cause__
        assert isinstance(cause, IntegrityError)
        assert not is_unique_violation(cause)
        assert "failed to create package npm/None" in str(err.value)

        # the session is still usable after the failed insert
        assert find_or_insert(
            db,
            lambda: lookup_package(db, "npm", "left-pad"),
            lambda: Package(ecosystem="npm", name="left-pad"),
            "package npm/left-pad",
        ).created


class PgError(Exception):
    def __init__(self, pgcode):
        super().__init__("driver error")
        self.pgcode = pgcode


@pytest.mark.parametrize(
    "orig, expected",
    [
        (PgError("23505"), True),
        (PgError("23502"), False),
        (Exception("UNIQUE constraint failed: packages.name"), True),
        (Exception("NOT NULL constraint failed: packages.name"), False),
    ],
)
def test_is_unique_violation(orig, expected):
    assert is_unique_violation(IntegrityError("INSERT ...", {}, orig)) is expected


def test_is_unique_violation_requires_integrity_error():
    assert not is_unique_violation(ValueError("UNIQUE constraint failed"))
