from .films import Deployment, DeploymentRead, Film, FilmAdded, FilmAddedEvent, FilmCreate, FilmRead
from .accounts import Account, AccountRead

__all__ = [
    "Deployment",
    "DeploymentRead",
    "Film",
    "FilmAdded",
    "FilmAddedEvent",
    "FilmCreate",
    "FilmRead",
    "Account",
    "AccountRead",
]
