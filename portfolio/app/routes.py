"""API routes for the photography portfolio."""

import logging
from typing import Literal

import botocore.exceptions
import fastapi
import sqlalchemy.exc
import sqlmodel

from . import schemas, services
from .clients import ai, geocode, storage
from .database import get_admin_session, get_session
from .sync import synchronizer
from .sync.errors import InvalidPictureSetIdError, PictureSetNotFoundError

logger = logging.getLogger(__name__)

admin_router = fastapi.APIRouter(prefix='/admin')
public_router = fastapi.APIRouter()


# Dependencies
def get_analyzer() -> ai.ImageAnalyzer:
    """Image analysis client configured from settings."""
    return ai.ImageAnalyzer.from_settings()


def get_translator() -> ai.Translator:
    """Translation client configured from settings."""
    return ai.Translator.from_settings()


def get_synchronizer(
    session: sqlmodel.Session = fastapi.Depends(get_admin_session),
    object_storage: storage.ObjectStorage = fastapi.Depends(storage.get_storage),
    analyzer: ai.ImageAnalyzer = fastapi.Depends(get_analyzer),
    translator: ai.Translator = fastapi.Depends(get_translator),
) -> synchronizer.PictureSetSynchronizer:
    """Synchronizer bound to the request's session."""
    return synchronizer.PictureSetSynchronizer(
        session, object_storage, analyzer, translator
    )


def _set_id(raw: str) -> int:
    try:
        return synchronizer.parse_set_id(raw)
    except InvalidPictureSetIdError:
        raise fastapi.HTTPException(status_code=400, detail='Invalid id') from None


# Admin routes
@admin_router.post('/picture-sets', response_model=schemas.SyncResult)
async def create_picture_set(
    payload: schemas.PictureSetInput,
    sync: synchronizer.PictureSetSynchronizer = fastapi.Depends(get_synchronizer),
) -> schemas.SyncResult:
    """Create a picture set with its pictures."""
    try:
        return await sync.create(payload)
    except sqlalchemy.exc.SQLAlchemyError as exc:
        raise fastapi.HTTPException(status_code=500, detail=str(exc)) from exc


@admin_router.put('/picture-sets/{set_id}', response_model=schemas.SyncResult)
async def update_picture_set(
    set_id: str,
    payload: schemas.PictureSetInput,
    sync: synchronizer.PictureSetSynchronizer = fastapi.Depends(get_synchronizer),
) -> schemas.SyncResult:
    """Save the full desired state of an existing picture set."""
    try:
        return await sync.update(set_id, payload)
    except InvalidPictureSetIdError:
        raise fastapi.HTTPException(status_code=400, detail='Invalid id') from None
    except PictureSetNotFoundError:
        raise fastapi.HTTPException(
            status_code=404, detail='Picture set not found'
        ) from None
    except sqlalchemy.exc.SQLAlchemyError as exc:
        raise fastapi.HTTPException(status_code=500, detail=str(exc)) from exc


@admin_router.post(
    '/picture-sets/{set_id}/enrich', response_model=schemas.EnrichResult
)
async def enrich_picture_set(
    set_id: str,
    options: schemas.SyncOptions,
    sync: synchronizer.PictureSetSynchronizer = fastapi.Depends(get_synchronizer),
) -> schemas.EnrichResult:
    """Generate missing titles, locale texts and tags for a stored set."""
    try:
        return await sync.enrich(set_id, options)
    except InvalidPictureSetIdError:
        raise fastapi.HTTPException(status_code=400, detail='Invalid id') from None
    except PictureSetNotFoundError:
        raise fastapi.HTTPException(
            status_code=404, detail='Picture set not found'
        ) from None
    except sqlalchemy.exc.SQLAlchemyError as exc:
        raise fastapi.HTTPException(status_code=500, detail=str(exc)) from exc


@admin_router.get('/picture-sets', response_model=list[schemas.PictureSetSummary])
async def list_picture_sets(
    q: str | None = None,
    session: sqlmodel.Session = fastapi.Depends(get_admin_session),
) -> list[schemas.PictureSetSummary]:
    """List picture sets, optionally filtered by a search query."""
    return services.list_picture_sets(session, q)


@admin_router.get('/picture-sets/{set_id}', response_model=schemas.PictureSetDetail)
async def get_picture_set(
    set_id: str,
    session: sqlmodel.Session = fastapi.Depends(get_admin_session),
) -> schemas.PictureSetDetail:
    """Get the editor view of a picture set."""
    detail = services.get_picture_set_detail(session, _set_id(set_id))
    if detail is None:
        raise fastapi.HTTPException(status_code=404, detail='Picture set not found')
    return detail


@admin_router.delete('/picture-sets/{set_id}')
async def delete_picture_set(
    set_id: str,
    session: sqlmodel.Session = fastapi.Depends(get_admin_session),
    object_storage: storage.ObjectStorage = fastapi.Depends(storage.get_storage),
) -> dict[str, bool]:
    """Delete a picture set and its pictures."""
    if not services.delete_picture_set(session, object_storage, _set_id(set_id)):
        raise fastapi.HTTPException(status_code=404, detail='Picture set not found')
    return {'ok': True}


@admin_router.get('/vocab', response_model=schemas.Vocabulary)
async def get_vocabulary(
    session: sqlmodel.Session = fastapi.Depends(get_admin_session),
) -> schemas.Vocabulary:
    """Categories, seasons and sections for the editor."""
    return services.get_vocabulary(session)


@admin_router.post('/uploads', response_model=schemas.UploadResult)
async def upload_image(
    file: fastapi.UploadFile = fastapi.File(...),
    object_storage: storage.ObjectStorage = fastapi.Depends(storage.get_storage),
) -> schemas.UploadResult:
    """Store an uploaded image and return its key and public URL."""
    if not file.content_type or not file.content_type.startswith('image/'):
        raise fastapi.HTTPException(status_code=400, detail='File must be an image')
    content = await file.read()
    if not content:
        raise fastapi.HTTPException(status_code=400, detail='Empty file')

    key = storage.new_key(file.filename)
    try:
        object_storage.put(key, content, file.content_type)
    except (botocore.exceptions.BotoCoreError, botocore.exceptions.ClientError):
        logger.exception('Upload of %s failed', file.filename)
        raise fastapi.HTTPException(status_code=502, detail='Upload failed') from None
    return schemas.UploadResult(key=key, url=object_storage.public_url(key))


@admin_router.get('/geocode', response_model=list[geocode.GeocodeCandidate])
async def geocode_place(
    q: str = fastapi.Query(..., min_length=1),
    limit: int = 5,
    geocoder: geocode.Geocoder = fastapi.Depends(geocode.get_geocoder),
) -> list[geocode.GeocodeCandidate]:
    """Search for places by name."""
    return geocoder.geocode(q, limit)


# Public routes
@public_router.get('/picture-sets', response_model=list[schemas.PublicPictureSet])
async def list_public_picture_sets(
    locale: Literal['en', 'zh'] = 'en',
    session: sqlmodel.Session = fastapi.Depends(get_session),
    object_storage: storage.ObjectStorage = fastapi.Depends(storage.get_storage),
) -> list[schemas.PublicPictureSet]:
    """Published picture sets in the requested locale."""
    return services.list_public_picture_sets(session, object_storage, locale)


@public_router.get('/picture-styles', response_model=list[schemas.StyleGallery])
async def list_picture_styles(
    style: str | None = None,
    locale: Literal['en', 'zh'] = 'en',
    session: sqlmodel.Session = fastapi.Depends(get_session),
    object_storage: storage.ObjectStorage = fastapi.Depends(storage.get_storage),
) -> list[schemas.StyleGallery]:
    """Recent published pictures per photography style."""
    return services.list_style_galleries(session, object_storage, locale, style)
