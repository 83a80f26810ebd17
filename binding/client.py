"""
Async client for the film registry and signer services.

Wraps an account's call token and one registry address, and re-reads the
whole collection after every successful `add_film`.
"""
from typing import Any, Dict, List, Optional
import httpx
import logging
import os

logger = logging.getLogger(__name__)

REGISTRY_URL = os.getenv("REGISTRY_URL", "http://127.0.0.1:8000")
SIGNER_URL = os.getenv("SIGNER_URL", "http://127.0.0.1:8001")
REGISTRY_ADDRESS = os.getenv("REGISTRY_ADDRESS")

RATING_LABELS = {
    1: "Not Good",
    2: "Could Be Better",
    3: "It's Okay",
    4: "Pretty Good",
    5: "Loved It!",
}


def format_address(address: Optional[str]) -> str:
    if not address:
        return ""
    return f"{address[:6]}...{address[-4:]}"


class RegistryCallError(Exception):
    """A registry or signer call that was rejected."""

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    try:
        body = response.json()
    except ValueError:
        body = None
    detail = body.get("detail") if isinstance(body, dict) else None
    if not isinstance(detail, str) or not detail.strip():
        detail = f"Call failed with status {response.status_code}"
    raise RegistryCallError(detail, response.status_code)


class FilmRegistryClient:
    def __init__(
        self,
        registry_url: str = REGISTRY_URL,
        signer_url: str = SIGNER_URL,
        address: Optional[str] = REGISTRY_ADDRESS,
        registry_http: Optional[httpx.AsyncClient] = None,
        signer_http: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.address = address
        self.account: Optional[str] = None
        self.films_cache: List[Dict[str, Any]] = []
        self._token: Optional[str] = None
        self._registry = registry_http or httpx.AsyncClient(base_url=registry_url, timeout=timeout)
        self._signer = signer_http or httpx.AsyncClient(base_url=signer_url, timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self) -> None:
        await self._registry.aclose()
        await self._signer.aclose()

    @property
    def connected(self) -> bool:
        return self._token is not None

    async def register(self, email: str, password: str) -> str:
        r = await self._signer.post("/register", params={"email": email, "password": password})
        _raise_for_status(r)
        return r.json()["address"]

    async def connect(self, email: str, password: str) -> str:
        r = await self._signer.post("/token", data={"username": email, "password": password})
        _raise_for_status(r)
        token = r.json()["access_token"]

        r = await self._signer.get("/accounts/me", headers={"Authorization": f"Bearer {token}"})
        _raise_for_status(r)

        self._token = token
        self.account = r.json()["address"]
        logger.info(f"Connected as {format_address(self.account)}")
        if self.address:
            await self.load_films()
        return self.account

    def disconnect(self) -> None:
        self._token = None
        self.account = None
        self.films_cache = []
        logger.info("Disconnected")

    def _require_token(self) -> str:
        if self._token is None:
            raise RegistryCallError("Connect wallet first")
        return self._token

    def _registry_path(self, suffix: str = "") -> str:
        if not self.address:
            raise RegistryCallError("No registry address configured")
        return f"/registries/{self.address}{suffix}"

    async def deploy(self) -> str:
        r = await self._registry.post("/deployments", params={"token": self._require_token()})
        _raise_for_status(r)
        self.address = r.json()["address"]
        self.films_cache = []
        logger.info(f"FilmRegistry deployed to: {self.address}")
        return self.address

    async def add_film(self, name: str, rating: int, review: str = "") -> Dict[str, Any]:
        token = self._require_token()
        if not name or not name.strip():
            raise RegistryCallError("Enter film name")
        if rating == 0:
            raise RegistryCallError("Select rating")
        r = await self._registry.post(
            self._registry_path("/films"),
            params={"token": token},
            json={"name": name, "rating": rating, "review": review},
        )
        _raise_for_status(r)
        event = r.json()
        logger.info(f"Film added at position {event['position']}: {event['name']}")
        await self.load_films()
        return event

    async def get_film_count(self) -> int:
        r = await self._registry.get(self._registry_path("/films/count"))
        _raise_for_status(r)
        return r.json()["count"]

    async def films(self, position: int) -> Dict[str, Any]:
        r = await self._registry.get(self._registry_path(f"/films/{position}"))
        _raise_for_status(r)
        return r.json()

    async def get_all_films(self) -> List[Dict[str, Any]]:
        r = await self._registry.get(self._registry_path("/films"))
        _raise_for_status(r)
        return r.json()

    async def events(self, since: int = 0) -> List[Dict[str, Any]]:
        r = await self._registry.get(self._registry_path("/events"), params={"since": since})
        _raise_for_status(r)
        return r.json()

    async def load_films(self) -> List[Dict[str, Any]]:
        self.films_cache = await self.get_all_films()
        return self.films_cache

    async def average_rating(self) -> float:
        films = await self.get_all_films()
        if not films:
            return 0.0
        return round(sum(f["rating"] for f in films) / len(films), 1)
