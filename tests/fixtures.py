"""
Common fixtures for use in any test, not specific to a thing being tested.

"""

import pytest

from vulnstore.configuration import localconfig
from vulnstore.subsys import logger

logger.enable_test_logging()


@pytest.fixture()
def vulnstore_db(tmp_path, do_echo=False):
    """
    Sets up a fresh, file-backed sqlite db with all tables created, the same format a built database is shipped in
    :return:
    """

    from vulnstore.db.entities.common import do_disconnect, initialize
    from vulnstore.db.entities.upgrade import do_create_tables

    conn_str = "sqlite:///{}".format(tmp_path / "vulnerability.db")

    config = {"credentials": {"database": {"db_connect": conn_str, "db_echo": do_echo}}}

    try:
        logger.info("Initializing connection: {}".format(config))
        ret = initialize(localconfig=config)

        logger.info("Creating tables")
        do_create_tables()

        yield ret
    finally:
        logger.info("Cleaning up/disconnect")
        do_disconnect()


@pytest.fixture()
def seeded_db(vulnstore_db):
    """
    A db initialized with the default specifier overrides
    """
    from vulnstore.engine.bootstrap import init_db_content

    init_db_content()
    yield vulnstore_db


@pytest.fixture()
def test_config(tmp_path):
    """
    Loads a default configuration into the global config for the duration of the test
    """
    config = localconfig.load_defaults(configdir=str(tmp_path))
    yield config
    localconfig.get_config().clear()


@pytest.fixture()
def db_session(vulnstore_db):
    """
    A write session, committed on exit of the test
    """
    from vulnstore.db import session_scope

    with session_scope() as session:
        yield session
