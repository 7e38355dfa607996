import datetime

from vulnstore.db import db_providers, read_session_scope, session_scope

CAPTURED = datetime.datetime(2025, 1, 8, 1, 32, 55, tzinfo=datetime.timezone.utc)


def add_provider(db, **kwargs):
    args = dict(
        version="1",
        processor="vunnel@0.29.0",
        date_captured=CAPTURED,
        input_digest="xxh64:0a160d2b53dd0208",
    )
    args.update(kwargs)
    return db_providers.find_or_create_provider(db, "ubuntu", **args)


def test_create_provider(vulnstore_db):
    with session_scope() as db:
        result = add_provider(db)
        assert result.created
        assert result.id == "ubuntu"

    with read_session_scope() as db:
        provider = db_providers.get(db, "ubuntu")
        assert provider.processor == "vunnel@0.29.0"
        assert provider.date_captured == CAPTURED


def test_same_state_is_noop(vulnstore_db):
    with session_scope() as db:
        add_provider(db)

    with session_scope() as db:
        # naive datetimes are utc
        result = add_provider(db, date_captured=CAPTURED.replace(tzinfo=None))
        assert result.existing


def test_changed_state_overwrites(vulnstore_db):
    with session_scope() as db:
        add_provider(db)

    later = CAPTURED + datetime.timedelta(days=1)
    with session_scope() as db:
        result = add_provider(db, date_captured=later, input_digest="xxh64:ffff")
        assert result.existing

    with read_session_scope() as db:
        providers = db_providers.get_all(db)
        assert len(providers) == 1
        assert providers[0].date_captured == later
        assert providers[0].input_digest == "xxh64:ffff"


def test_get_missing(vulnstore_db):
    with read_session_scope() as db:
        assert db_providers.get(db, "nvd") is None
        assert db_providers.get_all(db) == []
