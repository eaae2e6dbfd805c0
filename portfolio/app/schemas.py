"""Request and response contract for the picture-set admin API.

Payloads are validated here, before the synchronizer runs. Every owner (the
set and each picture) carries its base text, the English and Chinese locale
texts, and a per-field touched state for English.
"""

import datetime
import enum
from typing import Literal

import pydantic

TEXT_FIELDS: tuple[str, ...] = ('title', 'subtitle', 'description')
LOCALES: tuple[str, ...] = ('en', 'zh')


class TouchState(str, enum.Enum):
    """Whether an English value was authored and must not be re-derived."""

    UNTOUCHED = 'untouched'
    AUTHORED_ENGLISH = 'authored_english'


class LocaleTexts(pydantic.BaseModel):
    """Title, subtitle and description in one locale."""

    title: str = ''
    subtitle: str = ''
    description: str = ''

    @pydantic.field_validator('title', 'subtitle', 'description', mode='before')
    @classmethod
    def _none_to_empty(cls, value: object) -> object:
        return '' if value is None else value


class TouchedFields(pydantic.BaseModel):
    """Touched state per text field."""

    title: TouchState = TouchState.UNTOUCHED
    subtitle: TouchState = TouchState.UNTOUCHED
    description: TouchState = TouchState.UNTOUCHED


class LocationInput(pydantic.BaseModel):
    """Exact location to link as the owner's primary location."""

    name: str = pydantic.Field(min_length=1)
    latitude: float = pydantic.Field(ge=-90, le=90)
    longitude: float = pydantic.Field(ge=-180, le=180)

    @pydantic.field_validator('name')
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError('location name must not be blank')
        return value


class SyncOptions(pydantic.BaseModel):
    """Auto-generation and propagation switches for one save."""

    autogen_titles_subtitles: bool = False
    auto_fill_locales: bool = False
    auto_generate_tags_untagged: bool = False
    fill_missing_from_set: bool = False
    override_existing_picture_props: bool = False
    propagate_categories_to_pictures: bool = False

    @property
    def enrichment_requested(self) -> bool:
        """True when any auto-generation switch is on."""
        return (
            self.autogen_titles_subtitles
            or self.auto_fill_locales
            or self.auto_generate_tags_untagged
        )


class OwnerInput(pydantic.BaseModel):
    """Fields shared by the set and each picture."""

    title: str = ''
    subtitle: str = ''
    description: str = ''
    tags: list[str] = pydantic.Field(default_factory=list)
    category_ids: list[int] = pydantic.Field(default_factory=list)
    location: LocationInput | None = None
    en: LocaleTexts = pydantic.Field(default_factory=LocaleTexts)
    zh: LocaleTexts = pydantic.Field(default_factory=LocaleTexts)
    en_touched: TouchedFields = pydantic.Field(default_factory=TouchedFields)

    @pydantic.field_validator('title', 'subtitle', 'description', mode='before')
    @classmethod
    def _none_to_empty(cls, value: object) -> object:
        return '' if value is None else value


class PictureInput(OwnerInput):
    """One entry of the submitted picture array.

    Entries with an ``id`` update that picture; entries without one are new.
    """

    id: int | None = pydantic.Field(default=None, gt=0)
    image_url: str = pydantic.Field(min_length=1)
    raw_image_url: str | None = None
    style: str | None = None
    season_id: int | None = None


class PictureSetInput(OwnerInput):
    """Full desired state of a picture set and its pictures."""

    cover_image_url: str | None = None
    position: Literal['up', 'down'] = 'up'
    is_published: bool = True
    primary_category_id: int | None = None
    season_id: int | None = None
    season_ids: list[int] = pydantic.Field(default_factory=list)
    section_ids: list[int] = pydantic.Field(default_factory=list)
    pictures: list[PictureInput] = pydantic.Field(default_factory=list)
    options: SyncOptions = pydantic.Field(default_factory=SyncOptions)

    @pydantic.field_validator('position', mode='before')
    @classmethod
    def _normalize_position(cls, value: object) -> object:
        if value is None or value == '':
            return 'up'
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @pydantic.model_validator(mode='after')
    def _unique_picture_ids(self) -> 'PictureSetInput':
        seen: set[int] = set()
        for picture in self.pictures:
            if picture.id is None:
                continue
            if picture.id in seen:
                raise ValueError(f'picture id {picture.id} submitted more than once')
            seen.add(picture.id)
        return self


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class BilingualOut(pydantic.BaseModel):
    """Locale texts and touched state after a save."""

    en: LocaleTexts
    zh: LocaleTexts
    en_touched: TouchedFields


class PictureResult(BilingualOut):
    """Outcome for one picture of a save."""

    id: int
    order_index: int
    enriched: bool | None = None


class SyncResult(BilingualOut):
    """Outcome of a save."""

    id: int
    pictures: list[PictureResult]
    deleted_picture_ids: list[int]


class EnrichResult(BilingualOut):
    """Outcome of enriching a stored set."""

    id: int
    pictures: list[PictureResult]


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


class LocationOut(pydantic.BaseModel):
    """A linked location."""

    id: int
    name: str
    latitude: float
    longitude: float


class PictureDetail(pydantic.BaseModel):
    """Editor view of one picture."""

    id: int
    order_index: int
    title: str
    subtitle: str
    description: str
    image_url: str | None
    raw_image_url: str | None
    style: str | None
    season_id: int | None
    tags: list[str]
    category_ids: list[int]
    location: LocationOut | None
    en: LocaleTexts
    zh: LocaleTexts


class PictureSetSummary(pydantic.BaseModel):
    """List entry for the editor."""

    id: int
    title: str
    subtitle: str
    description: str
    cover_image_url: str | None
    position: str
    is_published: bool
    picture_count: int
    updated_at: datetime.datetime


class PictureSetDetail(pydantic.BaseModel):
    """Editor view of a set, shaped like the save payload."""

    id: int
    title: str
    subtitle: str
    description: str
    cover_image_url: str | None
    position: str
    is_published: bool
    primary_category_id: int | None
    season_id: int | None
    tags: list[str]
    category_ids: list[int]
    section_ids: list[int]
    location: LocationOut | None
    en: LocaleTexts
    zh: LocaleTexts
    pictures: list[PictureDetail]


class VocabEntry(pydantic.BaseModel):
    """A category, season or section."""

    id: int
    name: str


class Vocabulary(pydantic.BaseModel):
    """Editor vocabularies."""

    categories: list[VocabEntry]
    seasons: list[VocabEntry]
    sections: list[VocabEntry]


class UploadResult(pydantic.BaseModel):
    """Stored upload."""

    key: str
    url: str | None


class PublicPicture(pydantic.BaseModel):
    """Localized picture for the public site."""

    id: int
    title: str
    subtitle: str
    description: str
    image_url: str | None
    style: str | None


class PublicPictureSet(pydantic.BaseModel):
    """Localized published set for the public site."""

    id: int
    title: str
    subtitle: str
    description: str
    cover_image_url: str | None
    position: str
    pictures: list[PublicPicture]


class StylePicture(pydantic.BaseModel):
    """Localized picture in a style gallery."""

    id: int
    picture_set_id: int
    set_title: str
    title: str
    subtitle: str
    description: str
    image_url: str | None
    tags: list[str]


class StyleGallery(pydantic.BaseModel):
    """Pictures of one photography style."""

    id: str
    tag_name: str
    label: str
    pictures: list[StylePicture]
