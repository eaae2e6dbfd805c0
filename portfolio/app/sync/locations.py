"""Find-or-create locations and replace an owner's primary location link."""

import logging

import sqlalchemy
import sqlmodel

from .. import models, schemas
from .associations import JoinTable

logger = logging.getLogger(__name__)


def resolve_location(
    session: sqlmodel.Session, name: str, latitude: float, longitude: float
) -> int:
    """Return the id of the location with exactly this name and coordinates.

    A new row is inserted when none matches. Near-duplicates are separate rows.
    """
    location = models.Location
    statement = (
        sqlmodel.select(location.id)
        .where(location.name == name)
        .where(location.latitude == latitude)
        .where(location.longitude == longitude)
        .order_by(location.id)  # type: ignore[arg-type]
    )
    found = session.exec(statement).first()
    if found is not None:
        return found

    created = models.Location(name=name, latitude=latitude, longitude=longitude)
    session.add(created)
    session.flush()
    assert created.id is not None
    logger.info(
        'Created location %s (%s, %s) id=%s', name, latitude, longitude, created.id
    )
    return created.id


def replace_primary_location(
    session: sqlmodel.Session, join: JoinTable, owner_id: int, location_id: int
) -> None:
    """Drop every location link of the owner and link ``location_id`` as primary."""
    session.execute(sqlalchemy.delete(join.model).where(join.owner == owner_id))
    session.execute(
        sqlalchemy.insert(join.model),
        [
            {
                join.owner_column: owner_id,
                join.target_column: location_id,
                'is_primary': True,
            }
        ],
    )
    session.flush()


def clear_locations(
    session: sqlmodel.Session, join: JoinTable, owner_id: int
) -> None:
    """Remove every location link of the owner."""
    session.execute(sqlalchemy.delete(join.model).where(join.owner == owner_id))
    session.flush()


def link_location(
    session: sqlmodel.Session,
    join: JoinTable,
    owner_id: int,
    location: schemas.LocationInput,
) -> int:
    """Resolve ``location`` and make it the owner's only, primary location."""
    location_id = resolve_location(
        session, location.name, location.latitude, location.longitude
    )
    replace_primary_location(session, join, owner_id, location_id)
    return location_id


def primary_location(
    session: sqlmodel.Session, join: JoinTable, owner_id: int
) -> models.Location | None:
    """The owner's primary location, if any."""
    statement = (
        sqlmodel.select(models.Location)
        .join(join.model, join.target == models.Location.id)
        .where(join.owner == owner_id)
        .where(join.model.is_primary == True)  # type: ignore[attr-defined]  # noqa: E712
    )
    return session.exec(statement).first()
