"""AI enrichment of pictures under a bounded worker pool.

Workers share one database session. Every write is committed before the
worker awaits again, so no worker ever leaves pending changes in the session
while another runs.
"""

import asyncio
import dataclasses
import datetime
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol, TypeVar

import sqlalchemy.exc
import sqlmodel

from .. import models, schemas, settings
from ..clients import ai
from . import associations, autofill, taxonomy

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')


class Analyzer(Protocol):
    async def analyze(self, image_url: str, kind: ai.AnalysisKind) -> str: ...


async def run_batch(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int,
) -> list[R | None]:
    """Run ``worker`` over ``items`` with at most ``concurrency`` in flight.

    Results keep the input order. A worker that raises is logged and yields
    None; its siblings keep running.
    """
    limit = max(1, min(settings.MAX_CONCURRENCY, concurrency))
    semaphore = asyncio.Semaphore(limit)

    async def guarded(index: int, item: T) -> R | None:
        async with semaphore:
            try:
                return await worker(item)
            except Exception:
                logger.exception('Batch item %d failed', index)
                return None

    return list(
        await asyncio.gather(*(guarded(i, item) for i, item in enumerate(items)))
    )


@dataclasses.dataclass
class PictureJob:
    """One picture to enrich and the texts carried for it through the save."""

    picture_id: int
    texts: autofill.OwnerTexts
    image_url: str | None = None


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class Enricher:
    """Generates titles, locale texts and tags for a set and its pictures."""

    def __init__(
        self,
        session: sqlmodel.Session,
        analyzer: Analyzer,
        translator: autofill.Translator,
        options: schemas.SyncOptions,
        concurrency: int = settings.DEFAULT_CONCURRENCY,
    ) -> None:
        self.session = session
        self.analyzer = analyzer
        self.translator = translator
        self.options = options
        self.concurrency = concurrency

    async def _analyze(
        self, image_url: str | None, kind: ai.AnalysisKind, owner: str
    ) -> str:
        if not image_url:
            return ''
        try:
            result = await self.analyzer.analyze(image_url, kind)
        except ai.ProviderError as exc:
            logger.warning('Image analysis (%s) failed for %s: %s', kind, owner, exc)
            return ''
        return (result or '').strip()

    async def _generate_titles(
        self,
        row: models.PictureSet | models.Picture,
        image_url: str | None,
        owner: str,
    ) -> dict[str, str]:
        generated: dict[str, str] = {}
        for kind in ('title', 'subtitle'):
            if (getattr(row, kind) or '').strip():
                continue
            text = await self._analyze(image_url, kind, owner)  # type: ignore[arg-type]
            if text:
                generated[kind] = text
        if generated:
            for name, value in generated.items():
                setattr(row, name, value)
            row.updated_at = _utcnow()
            self.session.add(row)
            self.session.commit()
            logger.info('Generated %s for %s', sorted(generated), owner)
        return generated

    async def enrich_set(
        self,
        picture_set: models.PictureSet,
        image_url: str | None,
        texts: autofill.OwnerTexts,
    ) -> dict[str, str]:
        """Fill an empty set title/subtitle from ``image_url``."""
        if not self.options.autogen_titles_subtitles:
            return {}
        generated = await self._generate_titles(
            picture_set, image_url, f'picture_set={picture_set.id}'
        )
        for name, value in generated.items():
            texts[name].base = value
        return generated

    async def _generate_tags(self, job: PictureJob, owner: str) -> list[int]:
        join = associations.PICTURE_TAGS
        if associations.existing_ids(self.session, join, job.picture_id):
            return []
        raw = await self._analyze(job.image_url, 'tags', owner)
        names = taxonomy.parse_tag_string(raw)
        if not names:
            return []
        tag_ids = taxonomy.ensure_tag_ids(self.session, names, taxonomy.TOPIC)
        delta = associations.extend(self.session, join, job.picture_id, tag_ids)
        self.session.commit()
        logger.info('Tagged %s with %s', owner, names)
        return sorted(delta.to_add)

    async def enrich_picture(self, job: PictureJob) -> bool:
        """Titles, then locale texts, then tags for one picture."""
        owner = f'picture={job.picture_id}'
        picture = self.session.get(models.Picture, job.picture_id)
        if picture is None:
            logger.warning('Skipping enrichment of missing %s', owner)
            return False

        if self.options.autogen_titles_subtitles:
            generated = await self._generate_titles(picture, job.image_url, owner)
            for name, value in generated.items():
                job.texts[name].base = value

        await autofill.fill_owner(job.texts, self.translator, owner)
        autofill.save_translations(
            self.session, autofill.PICTURE_TRANSLATIONS, job.picture_id, job.texts
        )
        self.session.commit()

        if self.options.auto_generate_tags_untagged:
            await self._generate_tags(job, owner)
        return True

    async def _guarded_picture(self, job: PictureJob) -> bool:
        try:
            return await self.enrich_picture(job)
        except sqlalchemy.exc.SQLAlchemyError:
            self.session.rollback()
            raise

    async def enrich_pictures(self, jobs: Sequence[PictureJob]) -> dict[int, bool]:
        """Enrich every job under the pool; failures are isolated per picture."""
        results = await run_batch(jobs, self._guarded_picture, self.concurrency)
        return {
            job.picture_id: bool(result)
            for job, result in zip(jobs, results, strict=True)
        }
