"""Database models for the photography portfolio."""

import datetime

import sqlmodel


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------


class Category(sqlmodel.SQLModel, table=True):
    """Editor-facing category (e.g. Nature, Architecture)."""

    __tablename__ = 'categories'  # type: ignore[misc]

    id: int | None = sqlmodel.Field(default=None, primary_key=True)
    name: str = sqlmodel.Field(index=True)


class Season(sqlmodel.SQLModel, table=True):
    """Editor-facing season."""

    __tablename__ = 'seasons'  # type: ignore[misc]

    id: int | None = sqlmodel.Field(default=None, primary_key=True)
    name: str


class Section(sqlmodel.SQLModel, table=True):
    """Display section of the public site (e.g. top, bottom)."""

    __tablename__ = 'sections'  # type: ignore[misc]

    id: int | None = sqlmodel.Field(default=None, primary_key=True)
    name: str
    display_order: int = 0


class Tag(sqlmodel.SQLModel, table=True):
    """Taxonomy entry, unique by its type-qualified slug."""

    __tablename__ = 'tags'  # type: ignore[misc]

    id: int | None = sqlmodel.Field(default=None, primary_key=True)
    name: str = sqlmodel.Field(index=True)
    type: str = sqlmodel.Field(index=True)
    slug: str = sqlmodel.Field(unique=True)


class Location(sqlmodel.SQLModel, table=True):
    """Named coordinate, reused by exact (name, latitude, longitude)."""

    __tablename__ = 'locations'  # type: ignore[misc]

    id: int | None = sqlmodel.Field(default=None, primary_key=True)
    name: str = sqlmodel.Field(index=True)
    latitude: float
    longitude: float
    created_at: datetime.datetime = sqlmodel.Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Owners
# ---------------------------------------------------------------------------


class PictureSet(sqlmodel.SQLModel, table=True):
    """A published collection of pictures."""

    __tablename__ = 'picture_sets'  # type: ignore[misc]

    id: int | None = sqlmodel.Field(default=None, primary_key=True)
    title: str = ''
    subtitle: str = ''
    description: str = ''
    cover_image_url: str | None = None
    position: str = 'up'
    is_published: bool = True
    primary_category_id: int | None = sqlmodel.Field(
        default=None, foreign_key='categories.id'
    )
    season_id: int | None = sqlmodel.Field(default=None, foreign_key='seasons.id')
    created_at: datetime.datetime = sqlmodel.Field(default_factory=_utcnow)
    updated_at: datetime.datetime = sqlmodel.Field(default_factory=_utcnow)


class Picture(sqlmodel.SQLModel, table=True):
    """A single picture within a set."""

    __tablename__ = 'pictures'  # type: ignore[misc]

    id: int | None = sqlmodel.Field(default=None, primary_key=True)
    picture_set_id: int = sqlmodel.Field(foreign_key='picture_sets.id', index=True)
    order_index: int = 0
    title: str = ''
    subtitle: str = ''
    description: str = ''
    image_url: str | None = None
    raw_image_url: str | None = None
    style: str | None = None
    season_id: int | None = sqlmodel.Field(default=None, foreign_key='seasons.id')
    created_at: datetime.datetime = sqlmodel.Field(default_factory=_utcnow)
    updated_at: datetime.datetime = sqlmodel.Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Translations, keyed by (owner, locale)
# ---------------------------------------------------------------------------


class PictureSetTranslation(sqlmodel.SQLModel, table=True):
    """Localized text for a picture set."""

    __tablename__ = 'picture_set_translations'  # type: ignore[misc]

    picture_set_id: int = sqlmodel.Field(
        foreign_key='picture_sets.id', primary_key=True
    )
    locale: str = sqlmodel.Field(primary_key=True)
    title: str | None = None
    subtitle: str | None = None
    description: str | None = None


class PictureTranslation(sqlmodel.SQLModel, table=True):
    """Localized text for a picture."""

    __tablename__ = 'picture_translations'  # type: ignore[misc]

    picture_id: int = sqlmodel.Field(foreign_key='pictures.id', primary_key=True)
    locale: str = sqlmodel.Field(primary_key=True)
    title: str | None = None
    subtitle: str | None = None
    description: str | None = None


# ---------------------------------------------------------------------------
# Association rows
# ---------------------------------------------------------------------------


class PictureSetTag(sqlmodel.SQLModel, table=True):
    """Set to tag link."""

    __tablename__ = 'picture_set_taggings'  # type: ignore[misc]

    picture_set_id: int = sqlmodel.Field(
        foreign_key='picture_sets.id', primary_key=True
    )
    tag_id: int = sqlmodel.Field(foreign_key='tags.id', primary_key=True)


class PictureSetCategory(sqlmodel.SQLModel, table=True):
    """Set to category link; at most one is primary."""

    __tablename__ = 'picture_set_categories'  # type: ignore[misc]

    picture_set_id: int = sqlmodel.Field(
        foreign_key='picture_sets.id', primary_key=True
    )
    category_id: int = sqlmodel.Field(foreign_key='categories.id', primary_key=True)
    is_primary: bool = False


class PictureSetSection(sqlmodel.SQLModel, table=True):
    """Set to display section link."""

    __tablename__ = 'picture_set_section_assignments'  # type: ignore[misc]

    picture_set_id: int = sqlmodel.Field(
        foreign_key='picture_sets.id', primary_key=True
    )
    section_id: int = sqlmodel.Field(foreign_key='sections.id', primary_key=True)
    page_context: str = 'default'
    display_order: int = 0


class PictureSetLocation(sqlmodel.SQLModel, table=True):
    """Set to location link."""

    __tablename__ = 'picture_set_locations'  # type: ignore[misc]

    picture_set_id: int = sqlmodel.Field(
        foreign_key='picture_sets.id', primary_key=True
    )
    location_id: int = sqlmodel.Field(foreign_key='locations.id', primary_key=True)
    is_primary: bool = False


class PictureTag(sqlmodel.SQLModel, table=True):
    """Picture to tag link."""

    __tablename__ = 'picture_taggings'  # type: ignore[misc]

    picture_id: int = sqlmodel.Field(foreign_key='pictures.id', primary_key=True)
    tag_id: int = sqlmodel.Field(foreign_key='tags.id', primary_key=True)


class PictureCategory(sqlmodel.SQLModel, table=True):
    """Picture to category link."""

    __tablename__ = 'picture_categories'  # type: ignore[misc]

    picture_id: int = sqlmodel.Field(foreign_key='pictures.id', primary_key=True)
    category_id: int = sqlmodel.Field(foreign_key='categories.id', primary_key=True)
    is_primary: bool = False


class PictureLocation(sqlmodel.SQLModel, table=True):
    """Picture to location link."""

    __tablename__ = 'picture_locations'  # type: ignore[misc]

    picture_id: int = sqlmodel.Field(foreign_key='pictures.id', primary_key=True)
    location_id: int = sqlmodel.Field(foreign_key='locations.id', primary_key=True)
    is_primary: bool = False
