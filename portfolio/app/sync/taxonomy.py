"""Tag resolution: make sure named tags exist and return their ids."""

import logging
import re
from collections.abc import Iterable
from typing import Any

import sqlalchemy
import sqlalchemy.exc
import sqlmodel
from sqlalchemy.dialects import postgresql, sqlite

from .. import models

logger = logging.getLogger(__name__)

TOPIC = 'topic'
CATEGORY = 'category'
SEASON = 'season'
STYLE = 'style'

_WHITESPACE = re.compile(r'\s+')
# Newlines, commas and semicolons, Latin or full-width.
_TAG_SEPARATORS = re.compile(r'[\n,，;；]')


def normalize_names(names: Iterable[str | None]) -> list[str]:
    """Trim, drop empties and de-duplicate, keeping first occurrence order."""
    seen: dict[str, None] = {}
    for name in names:
        cleaned = (name or '').strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


def make_slug(tag_type: str, name: str) -> str:
    """Type-qualified slug, e.g. ``topic:sea-view``."""
    return f'{tag_type}:{_WHITESPACE.sub("-", name.strip()).lower()}'


def parse_tag_string(raw: str | None) -> list[str]:
    """Split free-form model output into lower-cased unique tag names."""
    if not raw:
        return []
    parts = (part.strip().lower() for part in _TAG_SEPARATORS.split(raw))
    return normalize_names(parts)


def _insert_ignoring_slug_conflicts(
    session: sqlmodel.Session, rows: list[dict[str, str]]
) -> Any:
    table = models.Tag.__table__  # type: ignore[attr-defined]
    dialect = session.get_bind().dialect.name
    if dialect == 'postgresql':
        return (
            postgresql.insert(table)
            .values(rows)
            .on_conflict_do_nothing(index_elements=['slug'])
        )
    if dialect == 'sqlite':
        return (
            sqlite.insert(table)
            .values(rows)
            .on_conflict_do_nothing(index_elements=['slug'])
        )
    return sqlalchemy.insert(table).prefix_with('IGNORE').values(rows)


def ensure_tag_ids(
    session: sqlmodel.Session, names: Iterable[str | None], tag_type: str
) -> list[int]:
    """Guarantee a tag row per name and return the canonical ids.

    The insert never mutates existing rows. It runs in a savepoint, so a
    failure there rolls back only the insert and is logged: a concurrent
    writer may have won the slug, and the select below still finds its row.
    A failing select propagates.
    """
    unique = normalize_names(names)
    if not unique:
        return []

    slugs = [make_slug(tag_type, name) for name in unique]
    rows = [
        {'name': name, 'type': tag_type, 'slug': slug}
        for name, slug in zip(unique, slugs, strict=True)
    ]
    try:
        with session.begin_nested():
            session.execute(_insert_ignoring_slug_conflicts(session, rows))
    except sqlalchemy.exc.SQLAlchemyError as exc:
        logger.warning(
            'Tag upsert failed for type=%s names=%s: %s', tag_type, unique, exc
        )

    tag = models.Tag
    statement = (
        sqlmodel.select(tag.id)
        .where(tag.type == tag_type)
        .where(
            sqlalchemy.or_(
                tag.name.in_(unique),  # type: ignore[attr-defined]
                tag.slug.in_(slugs),  # type: ignore[attr-defined]
            )
        )
        .order_by(tag.id)
    )
    return [tag_id for tag_id in session.exec(statement).all() if tag_id is not None]


def names_for_ids(
    session: sqlmodel.Session,
    model: type[models.Category] | type[models.Season],
    ids: Iterable[int],
) -> list[str]:
    """Names of vocabulary rows (categories or seasons) for ``ids``."""
    wanted = sorted(set(ids))
    if not wanted:
        return []
    statement = sqlmodel.select(model.name).where(
        model.id.in_(wanted)  # type: ignore[union-attr]
    )
    return list(session.exec(statement).all())
