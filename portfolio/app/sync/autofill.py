"""Bilingual autofill: keep English and Chinese texts filled from the base text.

Each owner (a picture set or a picture) has, per text field, a base value, an
English and a Chinese value, and a touched state for English. :func:`fill_field`
applies the decision table below; translation failures leave the field empty.

1. Empty base clears ``zh`` and, unless touched, ``en``.
2. Both locales empty: a CJK base becomes ``zh`` and is translated to ``en``;
   any other base becomes an authored ``en`` and is translated to ``zh``.
3. Only ``zh`` filled and ``en`` untouched: translate ``zh`` to ``en``.
4. Only ``en`` filled: translate ``en`` to ``zh``.
5. One retry in each direction for whatever is still missing.
"""

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import sqlmodel

from .. import models, schemas
from ..clients import ai
from .language import is_cjk

logger = logging.getLogger(__name__)


class Translator(Protocol):
    async def translate(
        self, text: str, target: str, source: str = 'auto'
    ) -> str: ...


@dataclasses.dataclass
class FieldState:
    """Base, English and Chinese values of one text field."""

    base: str = ''
    en: str = ''
    zh: str = ''
    touched: schemas.TouchState = schemas.TouchState.UNTOUCHED

    @property
    def is_touched(self) -> bool:
        return self.touched == schemas.TouchState.AUTHORED_ENGLISH


OwnerTexts = dict[str, FieldState]


async def _translate(
    translator: Translator, text: str, target: str, source: str, owner: str
) -> str:
    try:
        result = await translator.translate(text, target, source)
    except ai.ProviderError as exc:
        logger.warning('Translation to %s failed for %s: %s', target, owner, exc)
        return ''
    return (result or '').strip()


async def fill_field(
    state: FieldState, translator: Translator, owner: str = 'owner'
) -> FieldState:
    """Apply the decision table to one field, in place."""
    base = state.base.strip()
    state.en = state.en.strip()
    state.zh = state.zh.strip()

    if not base:
        state.zh = ''
        if not state.is_touched:
            state.en = ''
        return state

    if not state.en and not state.zh:
        if is_cjk(base):
            state.zh = base
            if not state.is_touched:
                state.en = await _translate(translator, base, 'en', 'zh', owner)
        else:
            if not state.is_touched:
                state.en = base
                state.touched = schemas.TouchState.AUTHORED_ENGLISH
            state.zh = await _translate(translator, base, 'zh', 'en', owner)
    elif not state.en and state.zh and not state.is_touched:
        state.en = await _translate(translator, state.zh, 'en', 'zh', owner)
    elif not state.zh and state.en:
        state.zh = await _translate(translator, state.en, 'zh', 'en', owner)

    if not state.en and state.zh and not state.is_touched:
        state.en = await _translate(translator, state.zh, 'en', 'zh', owner)
    if not state.zh and state.en:
        state.zh = await _translate(translator, state.en, 'zh', 'en', owner)
    return state


async def fill_owner(
    texts: OwnerTexts, translator: Translator, owner: str = 'owner'
) -> OwnerTexts:
    """Run :func:`fill_field` over every text field of one owner."""
    for name in schemas.TEXT_FIELDS:
        await fill_field(texts[name], translator, f'{owner}.{name}')
    return texts


def texts_from_input(owner: schemas.OwnerInput) -> OwnerTexts:
    """Build field states from a submitted set or picture."""
    return {
        name: FieldState(
            base=getattr(owner, name),
            en=getattr(owner.en, name),
            zh=getattr(owner.zh, name),
            touched=getattr(owner.en_touched, name),
        )
        for name in schemas.TEXT_FIELDS
    }


def refresh_base(texts: OwnerTexts, row: Any) -> None:
    """Take base values from a saved row (e.g. after AI generation)."""
    for name in schemas.TEXT_FIELDS:
        texts[name].base = getattr(row, name) or ''


def stored_texts(row: Any, stored: Mapping[str, schemas.LocaleTexts]) -> OwnerTexts:
    """Field states for an owner already in the store.

    A blank row value falls back to the stored English, then Chinese text, so
    that refilling never clears what the locales already hold.
    """
    texts: OwnerTexts = {}
    for name in schemas.TEXT_FIELDS:
        en = getattr(stored['en'], name)
        zh = getattr(stored['zh'], name)
        base = (getattr(row, name) or '').strip() or en or zh
        texts[name] = FieldState(base=base, en=en, zh=zh)
    return texts


def to_output(
    texts: OwnerTexts,
) -> tuple[schemas.LocaleTexts, schemas.LocaleTexts, schemas.TouchedFields]:
    """English texts, Chinese texts and touched states for a response."""
    en = schemas.LocaleTexts(**{name: texts[name].en for name in schemas.TEXT_FIELDS})
    zh = schemas.LocaleTexts(**{name: texts[name].zh for name in schemas.TEXT_FIELDS})
    touched = schemas.TouchedFields(
        **{name: texts[name].touched for name in schemas.TEXT_FIELDS}
    )
    return en, zh, touched


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class TranslationTable:
    """A per-locale translation table keyed by (owner, locale)."""

    model: type[sqlmodel.SQLModel]
    owner_column: str


SET_TRANSLATIONS = TranslationTable(models.PictureSetTranslation, 'picture_set_id')
PICTURE_TRANSLATIONS = TranslationTable(models.PictureTranslation, 'picture_id')


def save_translations(
    session: sqlmodel.Session,
    table: TranslationTable,
    owner_id: int,
    texts: OwnerTexts,
) -> None:
    """Upsert both locale rows of the owner; empty values are stored as NULL."""
    for locale in schemas.LOCALES:
        row = session.get(table.model, (owner_id, locale))
        if row is None:
            row = table.model(**{table.owner_column: owner_id, 'locale': locale})
        for name in schemas.TEXT_FIELDS:
            setattr(row, name, getattr(texts[name], locale) or None)
        session.add(row)
    session.flush()


def read_translations(
    session: sqlmodel.Session, table: TranslationTable, owner_id: int
) -> dict[str, schemas.LocaleTexts]:
    """Stored texts per locale; missing rows read as empty."""
    result: dict[str, schemas.LocaleTexts] = {}
    for locale in schemas.LOCALES:
        row = session.get(table.model, (owner_id, locale))
        values: Mapping[str, Any] = (
            {name: getattr(row, name) for name in schemas.TEXT_FIELDS} if row else {}
        )
        result[locale] = schemas.LocaleTexts(**values)
    return result
