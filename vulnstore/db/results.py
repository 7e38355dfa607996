from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from vulnstore.common.errors import StorageError
from vulnstore.db.entities.exceptions import is_unique_violation
from vulnstore.subsys import logger


@dataclass(frozen=True)
class FindResult:
    """
    Outcome of a find-or-create operation. created is False when the natural key resolved to an already persisted row,
    in which case entity is that row.
    """

    entity: Any
    created: bool

    @property
    def existing(self) -> bool:
        return not self.created

    @property
    def id(self):
        return self.entity.id

    @classmethod
    def of_existing(cls, entity):
        return cls(entity=entity, created=False)

    @classmethod
    def of_created(cls, entity):
        return cls(entity=entity, created=True)


def find_or_insert(session, lookup, build, description):
    """
    Find-or-create against a natural key. The insert runs in a savepoint so a unique-constraint violation from a
    concurrent writer can be rolled back alone and retried once as a lookup.

    :param session: the enclosing write session
    :param lookup: callable returning the existing entity or None
    :param build: callable returning a new, not yet added, entity
    :param description: natural key description used in logs and errors
    :return: FindResult
    """
    existing = lookup()
    if existing is not None:
        return FindResult.of_existing(existing)

    entity = build()
    try:
        with session.begin_nested():
            session.add(entity)
            session.flush()
    except SQLAlchemyError as err:
        if not is_unique_violation(err):
            raise StorageError(
                "failed to create {}: {}".format(description, err)
            ) from err

        logger.debug(
            "unique constraint violation creating {}, retrying as lookup".format(
                description
            )
        )
        existing = lookup()
        if existing is None:
            raise StorageError(
                "unique constraint violation creating {} but no existing row found".format(
                    description
                )
            ) from err
        return FindResult.of_existing(existing)

    return FindResult.of_created(entity)
