"""Film registry contract.

`FilmRegistry` is the only writer of `Film` and `FilmAddedEvent` rows. Each
deployed registry owns an append-only, gapless sequence of film records keyed
by insertion position.
"""
from sqlmodel import Session, select
from sqlalchemy import func
from typing import Callable, List, Optional
import hashlib
import logging
import threading

from ledger.models import Deployment, Film, FilmAdded, FilmAddedEvent, FilmRead

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
RATING_ERROR = f"Rating must be between {MIN_RATING} and {MAX_RATING}"

# appends are serialized process-wide; the (registry, position) unique
# constraint covers writers in other processes
_append_lock = threading.RLock()


class RegistryError(Exception):
    """Base class for registry call failures."""


class ValidationError(RegistryError):
    pass


class FilmNotFound(RegistryError):
    pass


class RegistryNotDeployed(RegistryError):
    pass


FilmAddedListener = Callable[[str, FilmAdded], None]


class FilmAddedListeners:
    """Callbacks notified once per successful append, in append order."""

    def __init__(self):
        self._listeners: List[FilmAddedListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: FilmAddedListener) -> FilmAddedListener:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: FilmAddedListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, registry_address: str, event: FilmAdded) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(registry_address, event)
            except Exception as e:
                # the append is already committed
                logger.error(f"FilmAdded listener {listener!r} failed: {type(e).__name__}: {str(e)}")


film_added_listeners = FilmAddedListeners()


def contract_address(deployer: str, nonce: int) -> str:
    digest = hashlib.sha256(f"{deployer.lower()}:{nonce}".encode("utf-8")).hexdigest()
    return "0x" + digest[-40:]


def deploy_registry(session: Session, deployer: str) -> Deployment:
    """Create a fresh, empty registry at an address derived from the deployer's nonce."""
    with _append_lock:
        nonce = session.exec(
            select(func.count()).select_from(Deployment).where(Deployment.deployer == deployer)
        ).one()
        deployment = Deployment(
            address=contract_address(deployer, nonce),
            deployer=deployer,
            nonce=nonce,
        )
        try:
            session.add(deployment)
            session.commit()
            session.refresh(deployment)
        except Exception:
            session.rollback()
            raise

    logger.info(f"FilmRegistry deployed to {deployment.address} by {deployer}")
    return deployment


def validate_rating(rating) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError(RATING_ERROR)
    if rating < MIN_RATING or rating > MAX_RATING:
        raise ValidationError(RATING_ERROR)
    return rating


class FilmRegistry:
    """
    Registry contract bound to one deployment.

    With ``zero_value_reads`` set, `films` answers unassigned positions with
    an empty record (name "", rating 0, review "") instead of raising
    `FilmNotFound`.
    """

    def __init__(
        self,
        session: Session,
        address: str,
        listeners: Optional[FilmAddedListeners] = None,
        zero_value_reads: bool = False,
    ):
        self.session = session
        self.address = address
        self.listeners = film_added_listeners if listeners is None else listeners
        self.zero_value_reads = zero_value_reads

        if session.get(Deployment, address) is None:
            raise RegistryNotDeployed(f"No registry deployed at {address}")

    def add_film(self, name: str, rating: int, review: str = "") -> FilmAdded:
        rating = validate_rating(rating)
        if not isinstance(name, str) or not isinstance(review, str):
            raise ValidationError("Film name and review must be text")

        with _append_lock:
            position = self.get_film_count()
            film = Film(
                registry_address=self.address,
                position=position,
                name=name,
                rating=rating,
                review=review,
            )
            record = FilmAddedEvent(
                registry_address=self.address,
                position=position,
                name=name,
                rating=rating,
                review=review,
            )
            try:
                self.session.add(film)
                self.session.add(record)
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise

            # published under the lock so listeners see appends in position order
            event = FilmAdded(position=position, name=name, rating=rating, review=review)
            self.listeners.publish(self.address, event)
        return event

    def get_film_count(self) -> int:
        return self.session.exec(
            select(func.count()).select_from(Film).where(Film.registry_address == self.address)
        ).one()

    def films(self, position: int) -> FilmRead:
        film = None
        if position >= 0:
            film = self.session.exec(
                select(Film).where(
                    Film.registry_address == self.address,
                    Film.position == position,
                )
            ).first()

        if film is None:
            if self.zero_value_reads and position >= 0:
                return FilmRead(position=position, name="", rating=0, review="")
            raise FilmNotFound(f"No film at position {position}")

        return FilmRead(position=film.position, name=film.name, rating=film.rating, review=film.review)

    def get_all_films(self) -> List[FilmRead]:
        films = self.session.exec(
            select(Film)
            .where(Film.registry_address == self.address)
            .order_by(Film.position)
        ).all()
        return [
            FilmRead(position=film.position, name=film.name, rating=film.rating, review=film.review)
            for film in films
        ]

    def events(self, since: int = 0) -> List[FilmAdded]:
        records = self.session.exec(
            select(FilmAddedEvent)
            .where(
                FilmAddedEvent.registry_address == self.address,
                FilmAddedEvent.position >= since,
            )
            .order_by(FilmAddedEvent.position)
        ).all()
        return [
            FilmAdded(position=r.position, name=r.name, rating=r.rating, review=r.review)
            for r in records
        ]
