"""Read and delete operations behind the admin and public routers."""

import logging

import sqlalchemy
import sqlmodel

from . import models, schemas, styles
from .clients import storage as storage_client
from .sync import associations, autofill, locations, taxonomy

logger = logging.getLogger(__name__)

LIST_LIMIT = 200
STYLE_GALLERY_LIMIT = 80
RECENT_STYLE_ID = 'travel'


def _topic_tag_names(
    session: sqlmodel.Session, join: associations.JoinTable, owner_id: int
) -> list[str]:
    tag = models.Tag
    statement = (
        sqlmodel.select(tag.name)
        .join(join.model, join.target == tag.id)
        .where(join.owner == owner_id)
        .where(tag.type == taxonomy.TOPIC)
        .order_by(tag.name)
    )
    return list(session.exec(statement).all())


def _location_out(
    session: sqlmodel.Session, join: associations.JoinTable, owner_id: int
) -> schemas.LocationOut | None:
    location = locations.primary_location(session, join, owner_id)
    if location is None or location.id is None:
        return None
    return schemas.LocationOut(
        id=location.id,
        name=location.name,
        latitude=location.latitude,
        longitude=location.longitude,
    )


def _pictures_of(session: sqlmodel.Session, set_id: int) -> list[models.Picture]:
    picture = models.Picture
    statement = (
        sqlmodel.select(picture)
        .where(picture.picture_set_id == set_id)
        .order_by(picture.order_index, picture.id)  # type: ignore[arg-type]
    )
    return list(session.exec(statement).all())


def list_picture_sets(
    session: sqlmodel.Session, q: str | None = None
) -> list[schemas.PictureSetSummary]:
    """Most recently updated sets; every word of ``q`` must match some text."""
    picture_set = models.PictureSet
    statement = sqlmodel.select(picture_set)
    for term in (q or '').split():
        pattern = f'%{term}%'
        statement = statement.where(
            sqlalchemy.or_(
                picture_set.title.ilike(pattern),  # type: ignore[attr-defined]
                picture_set.subtitle.ilike(pattern),  # type: ignore[attr-defined]
                picture_set.description.ilike(pattern),  # type: ignore[attr-defined]
            )
        )
    statement = statement.order_by(
        picture_set.updated_at.desc(),  # type: ignore[attr-defined]
        picture_set.id.desc(),  # type: ignore[union-attr]
    ).limit(LIST_LIMIT)
    sets = session.exec(statement).all()

    counts: dict[int, int] = {}
    ids = [s.id for s in sets if s.id is not None]
    if ids:
        picture = models.Picture
        rows = session.exec(
            sqlmodel.select(picture.picture_set_id, sqlalchemy.func.count())
            .where(picture.picture_set_id.in_(ids))  # type: ignore[attr-defined]
            .group_by(picture.picture_set_id)
        ).all()
        counts = {set_id: count for set_id, count in rows}

    return [
        schemas.PictureSetSummary(
            id=s.id,
            title=s.title,
            subtitle=s.subtitle,
            description=s.description,
            cover_image_url=s.cover_image_url,
            position=s.position,
            is_published=s.is_published,
            picture_count=counts.get(s.id, 0),
            updated_at=s.updated_at,
        )
        for s in sets
        if s.id is not None
    ]


def get_picture_set_detail(
    session: sqlmodel.Session, set_id: int
) -> schemas.PictureSetDetail | None:
    """Full editor view of a set, or None when it does not exist."""
    picture_set = session.get(models.PictureSet, set_id)
    if picture_set is None:
        return None

    pictures: list[schemas.PictureDetail] = []
    for picture in _pictures_of(session, set_id):
        assert picture.id is not None
        texts = autofill.read_translations(
            session, autofill.PICTURE_TRANSLATIONS, picture.id
        )
        pictures.append(
            schemas.PictureDetail(
                id=picture.id,
                order_index=picture.order_index,
                title=picture.title,
                subtitle=picture.subtitle,
                description=picture.description,
                image_url=picture.image_url,
                raw_image_url=picture.raw_image_url,
                style=picture.style,
                season_id=picture.season_id,
                tags=_topic_tag_names(session, associations.PICTURE_TAGS, picture.id),
                category_ids=sorted(
                    associations.existing_ids(
                        session, associations.PICTURE_CATEGORIES, picture.id
                    )
                ),
                location=_location_out(
                    session, associations.PICTURE_LOCATIONS, picture.id
                ),
                en=texts['en'],
                zh=texts['zh'],
            )
        )

    texts = autofill.read_translations(session, autofill.SET_TRANSLATIONS, set_id)
    return schemas.PictureSetDetail(
        id=set_id,
        title=picture_set.title,
        subtitle=picture_set.subtitle,
        description=picture_set.description,
        cover_image_url=picture_set.cover_image_url,
        position=picture_set.position,
        is_published=picture_set.is_published,
        primary_category_id=picture_set.primary_category_id,
        season_id=picture_set.season_id,
        tags=_topic_tag_names(session, associations.SET_TAGS, set_id),
        category_ids=sorted(
            associations.existing_ids(session, associations.SET_CATEGORIES, set_id)
        ),
        section_ids=sorted(
            associations.existing_ids(session, associations.SET_SECTIONS, set_id)
        ),
        location=_location_out(session, associations.SET_LOCATIONS, set_id),
        en=texts['en'],
        zh=texts['zh'],
        pictures=pictures,
    )


def delete_picture_set(
    session: sqlmodel.Session, storage: storage_client.ObjectStorage, set_id: int
) -> bool:
    """Delete a set with its pictures, links and translations.

    Picture objects are removed from storage on a best-effort basis first.
    """
    picture_set = session.get(models.PictureSet, set_id)
    if picture_set is None:
        return False

    pictures = _pictures_of(session, set_id)
    for picture in pictures:
        for value in (picture.image_url, picture.raw_image_url):
            storage.delete(value)

    picture_ids = [p.id for p in pictures if p.id is not None]
    if picture_ids:
        for picture_link in (
            models.PictureTag,
            models.PictureCategory,
            models.PictureLocation,
            models.PictureTranslation,
        ):
            session.execute(
                sqlalchemy.delete(picture_link).where(
                    picture_link.picture_id.in_(picture_ids)  # type: ignore[attr-defined]
                )
            )
        session.execute(
            sqlalchemy.delete(models.Picture).where(
                models.Picture.id.in_(picture_ids)  # type: ignore[union-attr]
            )
        )
    for set_link in (
        models.PictureSetTag,
        models.PictureSetCategory,
        models.PictureSetLocation,
        models.PictureSetSection,
        models.PictureSetTranslation,
    ):
        session.execute(
            sqlalchemy.delete(set_link).where(
                set_link.picture_set_id == set_id  # type: ignore[arg-type]
            )
        )
    session.delete(picture_set)
    session.commit()
    logger.info('Deleted picture set %s with pictures %s', set_id, picture_ids)
    return True


def get_vocabulary(session: sqlmodel.Session) -> schemas.Vocabulary:
    """Categories by name, seasons by id, sections by display order."""
    categories = session.exec(
        sqlmodel.select(models.Category).order_by(models.Category.name)
    ).all()
    seasons = session.exec(
        sqlmodel.select(models.Season).order_by(models.Season.id)  # type: ignore[arg-type]
    ).all()
    sections = session.exec(
        sqlmodel.select(models.Section).order_by(
            models.Section.display_order, models.Section.id  # type: ignore[arg-type]
        )
    ).all()

    def entries(rows: object) -> list[schemas.VocabEntry]:
        return [
            schemas.VocabEntry(id=row.id, name=row.name)  # type: ignore[attr-defined]
            for row in rows  # type: ignore[attr-defined]
        ]

    return schemas.Vocabulary(
        categories=entries(categories),
        seasons=entries(seasons),
        sections=entries(sections),
    )


def _localized(base: str, translated: str) -> str:
    return translated or base


def list_public_picture_sets(
    session: sqlmodel.Session,
    storage: storage_client.ObjectStorage,
    locale: str,
) -> list[schemas.PublicPictureSet]:
    """Published sets with text in ``locale``, falling back to base text."""
    picture_set = models.PictureSet
    sets = session.exec(
        sqlmodel.select(picture_set)
        .where(picture_set.is_published == True)  # noqa: E712
        .order_by(picture_set.updated_at.desc())  # type: ignore[attr-defined]
    ).all()

    result: list[schemas.PublicPictureSet] = []
    for s in sets:
        assert s.id is not None
        set_texts = autofill.read_translations(
            session, autofill.SET_TRANSLATIONS, s.id
        )[locale]
        pictures: list[schemas.PublicPicture] = []
        for picture in _pictures_of(session, s.id):
            assert picture.id is not None
            texts = autofill.read_translations(
                session, autofill.PICTURE_TRANSLATIONS, picture.id
            )[locale]
            pictures.append(
                schemas.PublicPicture(
                    id=picture.id,
                    title=_localized(picture.title, texts.title),
                    subtitle=_localized(picture.subtitle, texts.subtitle),
                    description=_localized(picture.description, texts.description),
                    image_url=storage.public_url(picture.image_url),
                    style=picture.style,
                )
            )
        result.append(
            schemas.PublicPictureSet(
                id=s.id,
                title=_localized(s.title, set_texts.title),
                subtitle=_localized(s.subtitle, set_texts.subtitle),
                description=_localized(s.description, set_texts.description),
                cover_image_url=storage.public_url(s.cover_image_url),
                position=s.position,
                pictures=pictures,
            )
        )
    return result


def _style_picture_ids(
    session: sqlmodel.Session, style: styles.PhotographyStyle
) -> set[int]:
    """Pictures carrying the style tag or filed under a matching category."""
    tag = models.Tag
    tagged = session.exec(
        sqlmodel.select(models.PictureTag.picture_id)
        .join(tag, models.PictureTag.tag_id == tag.id)
        .where(tag.type == taxonomy.STYLE)
        .where(sqlalchemy.func.lower(tag.name) == style.tag_name.lower())
    ).all()

    names = {style.tag_name.lower(), style.label_en.lower(), style.label_zh.lower()}
    category = models.Category
    filed = session.exec(
        sqlmodel.select(models.PictureCategory.picture_id)
        .join(category, models.PictureCategory.category_id == category.id)
        .where(sqlalchemy.func.lower(category.name).in_(names))
    ).all()
    return set(tagged) | set(filed)


def list_style_galleries(
    session: sqlmodel.Session,
    storage: storage_client.ObjectStorage,
    locale: str,
    style_id: str | None = None,
) -> list[schemas.StyleGallery]:
    """Recent published pictures grouped by photography style.

    The travel style lists the most recent pictures regardless of tags. An
    unknown ``style_id`` yields no galleries.
    """
    if style_id:
        style = styles.STYLES_BY_ID.get(style_id.strip().lower())
        targets = [style] if style else []
    else:
        targets = list(styles.PHOTOGRAPHY_STYLES)
    if not targets:
        return []

    picture = models.Picture
    picture_set = models.PictureSet
    rows = session.exec(
        sqlmodel.select(picture, picture_set)
        .join(picture_set, picture.picture_set_id == picture_set.id)
        .where(picture_set.is_published == True)  # noqa: E712
        .where(picture.image_url.is_not(None))  # type: ignore[union-attr]
        .order_by(
            picture.created_at.desc(),  # type: ignore[attr-defined]
            picture.order_index.desc(),  # type: ignore[attr-defined]
            picture.id.desc(),  # type: ignore[union-attr]
        )
        .limit(STYLE_GALLERY_LIMIT)
    ).all()

    set_titles: dict[int, str] = {}
    localized: list[schemas.StylePicture] = []
    for row, owner in rows:
        assert row.id is not None and owner.id is not None
        if owner.id not in set_titles:
            set_texts = autofill.read_translations(
                session, autofill.SET_TRANSLATIONS, owner.id
            )[locale]
            set_titles[owner.id] = _localized(owner.title, set_texts.title)
        texts = autofill.read_translations(
            session, autofill.PICTURE_TRANSLATIONS, row.id
        )[locale]
        localized.append(
            schemas.StylePicture(
                id=row.id,
                picture_set_id=owner.id,
                set_title=set_titles[owner.id],
                title=_localized(row.title, texts.title),
                subtitle=_localized(row.subtitle, texts.subtitle),
                description=_localized(row.description, texts.description),
                image_url=storage.public_url(row.image_url),
                tags=_topic_tag_names(session, associations.PICTURE_TAGS, row.id),
            )
        )

    galleries: list[schemas.StyleGallery] = []
    for style in targets:
        if style.id == RECENT_STYLE_ID:
            pictures = localized
        else:
            wanted = _style_picture_ids(session, style)
            pictures = [p for p in localized if p.id in wanted]
        galleries.append(
            schemas.StyleGallery(
                id=style.id,
                tag_name=style.tag_name,
                label=style.label_zh if locale == 'zh' else style.label_en,
                pictures=pictures,
            )
        )
    return galleries
