from vulnstore.db import DBMetadata
from vulnstore.db.entities.common import now_datetime


def get(session):
    """
    The single metadata row describing the schema version and build time of the database, or None
    """
    return session.query(DBMetadata).order_by(DBMetadata.id.desc()).first()


def set_metadata(session, schema_version, build_timestamp=None):
    """
    Replace the metadata row. There is only ever one.

    :param schema_version: (model, revision, addition) tuple
    :param build_timestamp: datetime, defaults to now
    :return: the DBMetadata row
    """
    model, revision, addition = schema_version

    session.query(DBMetadata).delete()
    record = DBMetadata(
        build_timestamp=build_timestamp or now_datetime(),
        model=model,
        revision=revision,
        addition=addition,
    )
    session.add(record)
    session.flush()
    return record
