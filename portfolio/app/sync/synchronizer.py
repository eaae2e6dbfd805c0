"""Save a picture set and its pictures from one full-state submission.

A save runs these steps in order:

1. validate the set id;
2. upsert the set row;
3. merge pictures by id (update, insert, delete the ones no longer submitted);
4. resolve typed tag ids for the set and every picture;
5. reconcile every link table and the primary category;
6. replace primary locations.

Steps 2-6 share one transaction. After the commit, image objects of dropped
pictures and replaced images are removed from storage unless still
referenced, then:

7. AI enrichment of the set and (under the bounded pool) its pictures;
8. a final bilingual autofill pass over the set and every picture.

Store errors roll back and propagate. AI, translation and storage failures
are logged and the save carries on.

:meth:`PictureSetSynchronizer.enrich` reruns steps 7 and 8 over a stored set.
"""

import dataclasses
import datetime
import logging
import re
from collections.abc import Iterable, Sequence

import sqlalchemy
import sqlalchemy.exc
import sqlmodel

from .. import models, schemas, settings, styles
from ..clients import storage as storage_client
from . import associations, autofill, enrichment, locations, taxonomy
from .errors import InvalidPictureSetIdError, PictureSetNotFoundError

logger = logging.getLogger(__name__)

_NUMERIC_ID = re.compile(r'[0-9]+')
_POSITION_SECTION_NAMES = {
    'up': re.compile(r'\bup\b|top|上|顶', re.IGNORECASE),
    'down': re.compile(r'\bdown\b|bottom|下|底', re.IGNORECASE),
}


def parse_set_id(raw: object) -> int:
    """Positive integer id from a path value, or InvalidPictureSetIdError."""
    if isinstance(raw, bool):
        raise InvalidPictureSetIdError(raw)
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw if raw is not None else '').strip()
        if not _NUMERIC_ID.fullmatch(text):
            raise InvalidPictureSetIdError(raw)
        value = int(text)
    if value <= 0:
        raise InvalidPictureSetIdError(raw)
    return value


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _keys(values: Iterable[str | None]) -> set[str]:
    keys = (storage_client.object_key(value) for value in values)
    return {key for key in keys if key}


@dataclasses.dataclass
class _PictureWork:
    """A submitted picture paired with its saved row id and carried texts."""

    payload: schemas.PictureInput
    picture_id: int
    order_index: int
    texts: autofill.OwnerTexts


@dataclasses.dataclass
class _Structure:
    picture_set_id: int
    pictures: list[_PictureWork]
    deleted_picture_ids: list[int]
    stale_values: set[str]


class PictureSetSynchronizer:
    """Applies a :class:`schemas.PictureSetInput` to the store."""

    def __init__(
        self,
        session: sqlmodel.Session,
        storage: storage_client.ObjectStorage,
        analyzer: enrichment.Analyzer,
        translator: autofill.Translator,
        concurrency: int = settings.PICTURE_JOB_CONCURRENCY,
    ) -> None:
        self.session = session
        self.storage = storage
        self.analyzer = analyzer
        self.translator = translator
        self.concurrency = concurrency

    async def create(self, payload: schemas.PictureSetInput) -> schemas.SyncResult:
        """Save a new picture set."""
        return await self.save(None, payload)

    async def update(
        self, raw_id: object, payload: schemas.PictureSetInput
    ) -> schemas.SyncResult:
        """Save over an existing picture set; the id is validated first."""
        return await self.save(parse_set_id(raw_id), payload)

    async def enrich(
        self, raw_id: object, options: schemas.SyncOptions
    ) -> schemas.EnrichResult:
        """Run steps 7 and 8 over a stored set without resubmitting it.

        Stored locale texts stand in for the submission; links, pictures and
        their order are left as they are.
        """
        set_id = parse_set_id(raw_id)
        picture_set = self.session.get(models.PictureSet, set_id)
        if picture_set is None:
            raise PictureSetNotFoundError(set_id)
        try:
            return await self._enrich_stored(picture_set, set_id, options)
        except sqlalchemy.exc.SQLAlchemyError:
            logger.exception('Enriching picture set %s failed', set_id)
            self.session.rollback()
            raise

    async def save(
        self, picture_set_id: int | None, payload: schemas.PictureSetInput
    ) -> schemas.SyncResult:
        """Run every step for one submission and report the outcome."""
        if picture_set_id is not None and picture_set_id <= 0:
            raise InvalidPictureSetIdError(picture_set_id)

        try:
            structure = self._write_structure(picture_set_id, payload)
            self.session.commit()
        except sqlalchemy.exc.SQLAlchemyError:
            logger.exception('Saving picture set %s failed', picture_set_id)
            self.session.rollback()
            raise
        except PictureSetNotFoundError:
            self.session.rollback()
            raise

        set_id = structure.picture_set_id
        self._delete_unreferenced(set_id, structure.stale_values)

        set_texts = autofill.texts_from_input(payload)
        try:
            enriched = await self._enrich(set_id, payload, set_texts, structure)
            await self._final_autofill(set_id, set_texts, structure.pictures)
        except sqlalchemy.exc.SQLAlchemyError:
            logger.exception('Enriching picture set %s failed', set_id)
            self.session.rollback()
            raise

        logger.info(
            'Saved picture set %s with %d pictures (%d deleted)',
            set_id,
            len(structure.pictures),
            len(structure.deleted_picture_ids),
        )
        return self._result(set_id, set_texts, structure, enriched)

    # -- steps 2-6 ---------------------------------------------------------

    def _write_structure(
        self, picture_set_id: int | None, payload: schemas.PictureSetInput
    ) -> _Structure:
        picture_set = self._upsert_set(picture_set_id, payload)
        assert picture_set.id is not None
        set_id = picture_set.id

        works, deleted_ids, stale = self._merge_pictures(set_id, payload)
        self._reconcile_set_links(set_id, payload)
        self._reconcile_picture_links(payload, works)
        self._replace_locations(set_id, payload, works)
        return _Structure(set_id, works, deleted_ids, stale)

    def _upsert_set(
        self, picture_set_id: int | None, payload: schemas.PictureSetInput
    ) -> models.PictureSet:
        if picture_set_id is None:
            picture_set = models.PictureSet()
        else:
            found = self.session.get(models.PictureSet, picture_set_id)
            if found is None:
                raise PictureSetNotFoundError(picture_set_id)
            picture_set = found

        picture_set.title = payload.title
        picture_set.subtitle = payload.subtitle
        picture_set.description = payload.description
        picture_set.cover_image_url = payload.cover_image_url or None
        picture_set.position = payload.position
        picture_set.is_published = payload.is_published
        picture_set.primary_category_id = payload.primary_category_id
        picture_set.season_id = self._set_season(payload)
        picture_set.updated_at = _utcnow()
        self.session.add(picture_set)
        self.session.flush()
        return picture_set

    @staticmethod
    def _selected_seasons(payload: schemas.PictureSetInput) -> set[int]:
        """The season_ids list plus season_id, when one is given."""
        selected = set(payload.season_ids)
        if payload.season_id is not None:
            selected.add(payload.season_id)
        return selected

    def _set_season(self, payload: schemas.PictureSetInput) -> int | None:
        if payload.season_id is not None:
            return payload.season_id
        selected = self._selected_seasons(payload)
        return next(iter(selected)) if len(selected) == 1 else None

    def _picture_season(
        self, entry: schemas.PictureInput, payload: schemas.PictureSetInput
    ) -> int | None:
        options = payload.options
        season_ids = self._selected_seasons(payload)
        if not options.fill_missing_from_set or len(season_ids) != 1:
            return entry.season_id
        set_season = next(iter(season_ids))
        if options.override_existing_picture_props:
            return set_season
        return entry.season_id if entry.season_id is not None else set_season

    def _merge_pictures(
        self, set_id: int, payload: schemas.PictureSetInput
    ) -> tuple[list[_PictureWork], list[int], set[str]]:
        picture = models.Picture
        existing = {
            row.id: row
            for row in self.session.exec(
                sqlmodel.select(picture).where(picture.picture_set_id == set_id)
            ).all()
        }

        rows: list[tuple[schemas.PictureInput, models.Picture]] = []
        stale: set[str] = set()
        for index, entry in enumerate(payload.pictures):
            row = existing.get(entry.id) if entry.id is not None else None
            if row is None:
                row = models.Picture(picture_set_id=set_id)
            else:
                for name in ('image_url', 'raw_image_url'):
                    old = getattr(row, name)
                    if old and old != getattr(entry, name):
                        stale.add(old)
            row.order_index = index
            row.title = entry.title
            row.subtitle = entry.subtitle
            row.description = entry.description
            row.image_url = entry.image_url
            row.raw_image_url = entry.raw_image_url or None
            row.style = entry.style or None
            row.season_id = self._picture_season(entry, payload)
            row.updated_at = _utcnow()
            self.session.add(row)
            rows.append((entry, row))

        kept = {row.id for _, row in rows if row.id is not None}
        dropped = [row for row_id, row in existing.items() if row_id not in kept]
        for row in dropped:
            stale.update(v for v in (row.image_url, row.raw_image_url) if v)
        deleted_ids = self._delete_pictures(dropped)
        self.session.flush()

        works: list[_PictureWork] = []
        for index, (entry, row) in enumerate(rows):
            assert row.id is not None
            works.append(
                _PictureWork(
                    payload=entry,
                    picture_id=row.id,
                    order_index=index,
                    texts=autofill.texts_from_input(entry),
                )
            )
        return works, deleted_ids, stale

    def _delete_pictures(self, dropped: list[models.Picture]) -> list[int]:
        if not dropped:
            return []
        ids = sorted(row.id for row in dropped if row.id is not None)
        for link in (
            models.PictureTag,
            models.PictureCategory,
            models.PictureLocation,
            models.PictureTranslation,
        ):
            self.session.execute(
                sqlalchemy.delete(link).where(
                    link.picture_id.in_(ids)  # type: ignore[attr-defined]
                )
            )
        self.session.execute(
            sqlalchemy.delete(models.Picture).where(
                models.Picture.id.in_(ids)  # type: ignore[union-attr]
            )
        )
        logger.info('Deleted pictures %s', ids)
        return ids

    def _position_section_ids(self, position: str) -> set[int]:
        pattern = _POSITION_SECTION_NAMES.get(position)
        if pattern is None:
            return set()
        section = models.Section
        rows = self.session.exec(
            sqlmodel.select(section).order_by(
                section.display_order, section.id  # type: ignore[arg-type]
            )
        ).all()
        for row in rows:
            if row.id is not None and pattern.search(row.name or ''):
                return {row.id}
        return set()

    def _typed_tag_ids(
        self, topic_names: Iterable[str], category_ids: Iterable[int]
    ) -> set[int]:
        topic = taxonomy.ensure_tag_ids(self.session, topic_names, taxonomy.TOPIC)
        category_names = taxonomy.names_for_ids(
            self.session, models.Category, category_ids
        )
        category = taxonomy.ensure_tag_ids(
            self.session, category_names, taxonomy.CATEGORY
        )
        return set(topic) | set(category)

    def _season_tag_ids(self, season_ids: Iterable[int]) -> set[int]:
        names = taxonomy.names_for_ids(self.session, models.Season, season_ids)
        return set(taxonomy.ensure_tag_ids(self.session, names, taxonomy.SEASON))

    def _reconcile_set_links(
        self, set_id: int, payload: schemas.PictureSetInput
    ) -> None:
        tag_ids = self._typed_tag_ids(payload.tags, payload.category_ids)
        tag_ids |= self._season_tag_ids(self._selected_seasons(payload))
        sections = set(payload.section_ids) | self._position_section_ids(
            payload.position
        )

        associations.reconcile(self.session, associations.SET_TAGS, set_id, tag_ids)
        associations.reconcile(
            self.session, associations.SET_CATEGORIES, set_id, payload.category_ids
        )
        associations.set_primary_category(
            self.session, set_id, payload.primary_category_id
        )
        associations.reconcile(
            self.session, associations.SET_SECTIONS, set_id, sections
        )

    def _reconcile_picture_links(
        self, payload: schemas.PictureSetInput, works: list[_PictureWork]
    ) -> None:
        propagate = payload.options.propagate_categories_to_pictures
        inherited_tags: set[int] = set()
        if propagate:
            names = taxonomy.names_for_ids(
                self.session, models.Category, payload.category_ids
            )
            inherited_tags = set(
                taxonomy.ensure_tag_ids(self.session, names, taxonomy.CATEGORY)
            )
            inherited_tags |= self._season_tag_ids(self._selected_seasons(payload))

        style_cache: dict[str, list[int]] = {}
        for work in works:
            entry = work.payload
            tag_ids = self._typed_tag_ids(entry.tags, entry.category_ids)
            tag_ids |= inherited_tags
            tag_name = styles.style_tag_name(entry.style)
            if tag_name is not None:
                if tag_name not in style_cache:
                    style_cache[tag_name] = taxonomy.ensure_tag_ids(
                        self.session, [tag_name], taxonomy.STYLE
                    )
                tag_ids |= set(style_cache[tag_name])

            category_ids = set(entry.category_ids)
            if propagate:
                category_ids |= set(payload.category_ids)

            associations.reconcile(
                self.session, associations.PICTURE_TAGS, work.picture_id, tag_ids
            )
            associations.reconcile(
                self.session,
                associations.PICTURE_CATEGORIES,
                work.picture_id,
                category_ids,
            )

    def _replace_locations(
        self,
        set_id: int,
        payload: schemas.PictureSetInput,
        works: list[_PictureWork],
    ) -> None:
        if payload.location is not None:
            locations.link_location(
                self.session, associations.SET_LOCATIONS, set_id, payload.location
            )
        else:
            locations.clear_locations(self.session, associations.SET_LOCATIONS, set_id)

        options = payload.options
        for work in works:
            location = work.payload.location
            if (
                options.fill_missing_from_set
                and payload.location is not None
                and (location is None or options.override_existing_picture_props)
            ):
                location = payload.location
            if location is not None:
                locations.link_location(
                    self.session,
                    associations.PICTURE_LOCATIONS,
                    work.picture_id,
                    location,
                )

    # -- storage -----------------------------------------------------------

    def _referenced_keys(self, set_id: int) -> set[str]:
        picture = models.Picture
        rows = self.session.exec(
            sqlmodel.select(picture.image_url, picture.raw_image_url).where(
                picture.picture_set_id == set_id
            )
        ).all()
        values: list[str | None] = [v for row in rows for v in row]
        picture_set = self.session.get(models.PictureSet, set_id)
        if picture_set is not None:
            values.append(picture_set.cover_image_url)
        return _keys(values)

    def _delete_unreferenced(self, set_id: int, stale_values: set[str]) -> None:
        if not stale_values:
            return
        referenced = self._referenced_keys(set_id)
        for value in sorted(stale_values):
            key = storage_client.object_key(value)
            if key and key not in referenced:
                self.storage.delete(value)

    # -- steps 7-8 ---------------------------------------------------------

    def _set_image_url(
        self,
        cover: str | None,
        pictures: Sequence[schemas.PictureInput] | Sequence[models.Picture],
    ) -> str | None:
        """The cover, else the first picture image, else the first raw image."""
        candidates = [
            cover,
            next((p.image_url for p in pictures if p.image_url), None),
            next((p.raw_image_url for p in pictures if p.raw_image_url), None),
        ]
        for value in candidates:
            url = self.storage.public_url(value)
            if url:
                return url
        return None

    async def _enrich(
        self,
        set_id: int,
        payload: schemas.PictureSetInput,
        set_texts: autofill.OwnerTexts,
        structure: _Structure,
    ) -> dict[int, bool] | None:
        options = payload.options
        if not options.enrichment_requested:
            return None

        enricher = enrichment.Enricher(
            self.session, self.analyzer, self.translator, options, self.concurrency
        )
        picture_set = self.session.get(models.PictureSet, set_id)
        if picture_set is not None:
            await enricher.enrich_set(
                picture_set,
                self._set_image_url(payload.cover_image_url, payload.pictures),
                set_texts,
            )

        jobs = [
            enrichment.PictureJob(
                picture_id=work.picture_id,
                texts=work.texts,
                image_url=self.storage.public_url(
                    work.payload.image_url or work.payload.raw_image_url
                ),
            )
            for work in structure.pictures
        ]
        return await enricher.enrich_pictures(jobs)

    async def _final_autofill(
        self,
        set_id: int,
        set_texts: autofill.OwnerTexts,
        works: list[_PictureWork],
    ) -> None:
        picture_set = self.session.get(models.PictureSet, set_id)
        if picture_set is not None:
            autofill.refresh_base(set_texts, picture_set)
        owner = f'picture_set={set_id}'
        await autofill.fill_owner(set_texts, self.translator, owner)
        autofill.save_translations(
            self.session, autofill.SET_TRANSLATIONS, set_id, set_texts
        )
        self.session.commit()

        for work in works:
            picture = self.session.get(models.Picture, work.picture_id)
            if picture is None:
                continue
            autofill.refresh_base(work.texts, picture)
            owner = f'picture={work.picture_id}'
            await autofill.fill_owner(work.texts, self.translator, owner)
            autofill.save_translations(
                self.session, autofill.PICTURE_TRANSLATIONS, work.picture_id, work.texts
            )
            self.session.commit()

    async def _enrich_stored(
        self,
        picture_set: models.PictureSet,
        set_id: int,
        options: schemas.SyncOptions,
    ) -> schemas.EnrichResult:
        set_texts = autofill.stored_texts(
            picture_set,
            autofill.read_translations(self.session, autofill.SET_TRANSLATIONS, set_id),
        )
        picture = models.Picture
        pictures = self.session.exec(
            sqlmodel.select(picture)
            .where(picture.picture_set_id == set_id)
            .order_by(picture.order_index, picture.id)  # type: ignore[arg-type]
        ).all()
        image_url = self._set_image_url(picture_set.cover_image_url, pictures)

        order: dict[int, int] = {}
        jobs: list[enrichment.PictureJob] = []
        for row in pictures:
            assert row.id is not None
            order[row.id] = row.order_index
            stored = autofill.read_translations(
                self.session, autofill.PICTURE_TRANSLATIONS, row.id
            )
            jobs.append(
                enrichment.PictureJob(
                    picture_id=row.id,
                    texts=autofill.stored_texts(row, stored),
                    image_url=self.storage.public_url(
                        row.image_url or row.raw_image_url
                    ),
                )
            )

        enriched = {job.picture_id: False for job in jobs}
        if options.enrichment_requested:
            enricher = enrichment.Enricher(
                self.session, self.analyzer, self.translator, options, self.concurrency
            )
            await enricher.enrich_set(picture_set, image_url, set_texts)
            owner = f'picture_set={set_id}'
            await autofill.fill_owner(set_texts, self.translator, owner)
            autofill.save_translations(
                self.session, autofill.SET_TRANSLATIONS, set_id, set_texts
            )
            self.session.commit()
            enriched = await enricher.enrich_pictures(jobs)

        logger.info(
            'Enriched picture set %s (%d of %d pictures)',
            set_id,
            sum(enriched.values()),
            len(jobs),
        )
        results: list[schemas.PictureResult] = []
        for job in jobs:
            en, zh, touched = autofill.to_output(job.texts)
            results.append(
                schemas.PictureResult(
                    id=job.picture_id,
                    order_index=order[job.picture_id],
                    en=en,
                    zh=zh,
                    en_touched=touched,
                    enriched=enriched.get(job.picture_id, False),
                )
            )
        en, zh, touched = autofill.to_output(set_texts)
        return schemas.EnrichResult(
            id=set_id, en=en, zh=zh, en_touched=touched, pictures=results
        )

    def _result(
        self,
        set_id: int,
        set_texts: autofill.OwnerTexts,
        structure: _Structure,
        enriched: dict[int, bool] | None,
    ) -> schemas.SyncResult:
        pictures: list[schemas.PictureResult] = []
        for work in structure.pictures:
            en, zh, touched = autofill.to_output(work.texts)
            pictures.append(
                schemas.PictureResult(
                    id=work.picture_id,
                    order_index=work.order_index,
                    en=en,
                    zh=zh,
                    en_touched=touched,
                    enriched=(
                        None if enriched is None else enriched.get(work.picture_id)
                    ),
                )
            )
        en, zh, touched = autofill.to_output(set_texts)
        return schemas.SyncResult(
            id=set_id,
            en=en,
            zh=zh,
            en_touched=touched,
            pictures=pictures,
            deleted_picture_ids=structure.deleted_picture_ids,
        )
