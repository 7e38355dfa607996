"""
Table creation and schema version bookkeeping. A built database carries a single metadata row recording the schema
version (model, revision, addition) it was written with. Consumers check it before relying on table shapes:
a different model is incompatible, a newer revision is only additive.
"""
from vulnstore import version
from vulnstore.common.errors import SchemaVersionError
from vulnstore.db.entities.exceptions import is_table_not_found
from vulnstore.subsys import logger


def do_create_tables(specific_tables=None):
    logger.info("Creating DB Tables")
    from vulnstore.db.entities.common import Base, do_create

    # import for the side effect of registering the models on Base
    import vulnstore.db.entities.vulnerability_store  # noqa: F401

    do_create(specific_tables=specific_tables, base=Base)
    logger.info("DB Tables created")
    return True


def get_versions():
    """
    :return: tuple of (code_versions, db_versions) dicts, db_versions is empty when the db is not yet initialized
    """
    code_versions = {
        "service_version": version.version,
        "schema_version": version.schema_version,
    }
    db_versions = {}

    from vulnstore.db import db_metadata, read_session_scope

    try:
        with read_session_scope() as dbsession:
            record = db_metadata.get(dbsession)
            if record:
                db_versions = {
                    "schema_version": record.schema_version,
                    "build_timestamp": record.build_timestamp,
                }
    except Exception as err:
        if is_table_not_found(err):
            logger.info("db_metadata table not found")
        else:
            raise Exception(
                "Cannot find existing/populated DB tables in connected database - has this DB been initialized?\n\nDB - exception: "
                + str(err)
            )

    return code_versions, db_versions


def do_version_update(code_versions=None, build_timestamp=None):
    from vulnstore.db import db_metadata, session_scope

    if code_versions is None:
        code_versions, _ = get_versions()

    with session_scope() as dbsession:
        record = db_metadata.set_metadata(
            dbsession,
            code_versions["schema_version"],
            build_timestamp=build_timestamp,
        )
        logger.info("DB metadata updated: {}".format(record))

    return True


def check_compatibility(session, expected=None):
    """
    Verify the connected db was written with a compatible schema.

    :param session:
    :param expected: (model, revision, addition) tuple, defaults to the schema version of this code
    :return: the DBMetadata row
    """
    from vulnstore.db import db_metadata

    expected = tuple(expected or version.schema_version)

    record = db_metadata.get(session)
    if record is None:
        raise SchemaVersionError(expected, None)

    found = record.schema_version
    if found[0] != expected[0]:
        raise SchemaVersionError(expected, found)

    if found[1] > expected[1]:
        logger.warn(
            "db schema revision v{}.{}.{} is newer than supported v{}.{}.{}, new tables and columns will be ignored".format(
                *found, *expected
            )
        )

    return record
