"""Set-membership reconciliation for many-to-many link tables.

Every link table is described by a :class:`JoinTable` naming the owner and
target columns. :func:`reconcile` reads the current membership for one owner,
diffs it against the desired ids and applies the delta as at most one batch
insert and one batch delete. Extra columns on a link table (``is_primary``,
``page_context``) are left to their column defaults.
"""

import dataclasses
import logging
from collections.abc import Iterable
from typing import Any

import sqlalchemy
import sqlmodel

from .. import models

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class JoinTable:
    """A link table between an owner and a target."""

    model: type[sqlmodel.SQLModel]
    owner_column: str
    target_column: str

    @property
    def owner(self) -> Any:
        return getattr(self.model, self.owner_column)

    @property
    def target(self) -> Any:
        return getattr(self.model, self.target_column)


SET_TAGS = JoinTable(models.PictureSetTag, 'picture_set_id', 'tag_id')
SET_CATEGORIES = JoinTable(models.PictureSetCategory, 'picture_set_id', 'category_id')
SET_SECTIONS = JoinTable(models.PictureSetSection, 'picture_set_id', 'section_id')
SET_LOCATIONS = JoinTable(models.PictureSetLocation, 'picture_set_id', 'location_id')
PICTURE_TAGS = JoinTable(models.PictureTag, 'picture_id', 'tag_id')
PICTURE_CATEGORIES = JoinTable(models.PictureCategory, 'picture_id', 'category_id')
PICTURE_LOCATIONS = JoinTable(models.PictureLocation, 'picture_id', 'location_id')


@dataclasses.dataclass(frozen=True)
class Delta:
    """Ids to link and unlink for one owner."""

    to_add: frozenset[int] = frozenset()
    to_remove: frozenset[int] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


def diff(desired: Iterable[int], existing: Iterable[int]) -> Delta:
    """Compute the add/remove delta between two memberships."""
    desired_set = frozenset(desired)
    existing_set = frozenset(existing)
    return Delta(
        to_add=desired_set - existing_set,
        to_remove=existing_set - desired_set,
    )


def existing_ids(session: sqlmodel.Session, join: JoinTable, owner_id: int) -> set[int]:
    """Current target ids linked to ``owner_id``."""
    statement = sqlmodel.select(join.target).where(join.owner == owner_id)
    return set(session.exec(statement).all())


def apply_delta(
    session: sqlmodel.Session, join: JoinTable, owner_id: int, delta: Delta
) -> None:
    """Write ``delta`` as one batch insert and one batch delete; skip empty halves."""
    if delta.to_add:
        rows = [
            {join.owner_column: owner_id, join.target_column: target_id}
            for target_id in sorted(delta.to_add)
        ]
        session.execute(sqlalchemy.insert(join.model), rows)
    if delta.to_remove:
        session.execute(
            sqlalchemy.delete(join.model).where(
                join.owner == owner_id,
                join.target.in_(sorted(delta.to_remove)),
            )
        )


def reconcile(
    session: sqlmodel.Session,
    join: JoinTable,
    owner_id: int,
    desired: Iterable[int],
) -> Delta:
    """Converge the links of ``owner_id`` to exactly ``desired``.

    The session is flushed, not committed; the caller owns the transaction.
    """
    delta = diff(desired, existing_ids(session, join, owner_id))
    if delta.is_empty:
        return delta
    apply_delta(session, join, owner_id, delta)
    session.flush()
    logger.debug(
        '%s owner=%s added=%s removed=%s',
        join.model.__name__,
        owner_id,
        sorted(delta.to_add),
        sorted(delta.to_remove),
    )
    return delta


def extend(
    session: sqlmodel.Session,
    join: JoinTable,
    owner_id: int,
    additional: Iterable[int],
) -> Delta:
    """Link ``additional`` ids without unlinking anything already present."""
    current = existing_ids(session, join, owner_id)
    return reconcile(session, join, owner_id, current | set(additional))


def set_primary_category(
    session: sqlmodel.Session, picture_set_id: int, category_id: int | None
) -> None:
    """Flag the set's link to ``category_id`` as primary and clear the others."""
    link = models.PictureSetCategory
    session.execute(
        sqlalchemy.update(link)
        .where(
            link.picture_set_id == picture_set_id,  # type: ignore[arg-type]
            link.is_primary == True,  # type: ignore[arg-type]  # noqa: E712
            link.category_id != category_id,  # type: ignore[arg-type]
        )
        .values(is_primary=False)
    )
    if category_id is not None:
        session.execute(
            sqlalchemy.update(link)
            .where(
                link.picture_set_id == picture_set_id,  # type: ignore[arg-type]
                link.category_id == category_id,  # type: ignore[arg-type]
            )
            .values(is_primary=True)
        )
    session.flush()
