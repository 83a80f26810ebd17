from sqlmodel import SQLModel, Field
from pydantic import StrictInt
from sqlalchemy import CheckConstraint, UniqueConstraint
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Deployment(SQLModel, table=True):
    address: str = Field(primary_key=True, max_length=42)
    deployer: str = Field(index=True, max_length=42)
    nonce: int = Field(ge=0)
    created_at: datetime = Field(default_factory=utcnow)


class DeploymentRead(SQLModel):
    address: str
    deployer: str
    created_at: datetime
    film_count: int = 0


class FilmBase(SQLModel):
    name: str
    rating: int
    review: str = ""


class Film(FilmBase, table=True):
    __table_args__ = (
        UniqueConstraint("registry_address", "position", name="film_position_unique"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="film_rating_range"),
    )

    id: int | None = Field(default=None, primary_key=True)
    registry_address: str = Field(foreign_key="deployment.address", index=True, max_length=42)
    position: int = Field(index=True)


class FilmCreate(FilmBase):
    rating: StrictInt


class FilmRead(FilmBase):
    position: int


class FilmAdded(SQLModel):
    position: int
    name: str
    rating: int
    review: str


class FilmAddedEvent(FilmAdded, table=True):
    __table_args__ = (
        UniqueConstraint("registry_address", "position", name="film_added_position_unique"),
    )

    id: int | None = Field(default=None, primary_key=True)
    registry_address: str = Field(foreign_key="deployment.address", index=True, max_length=42)
    emitted_at: datetime = Field(default_factory=utcnow)
