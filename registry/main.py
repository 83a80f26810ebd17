from fastapi import FastAPI, Depends, HTTPException, Path, Query, status
from sqlmodel import Session
from typing import List
from ledger.models import Deployment, DeploymentRead, FilmAdded, FilmCreate, FilmRead
from ledger.db import get_session, wait_for_db
from registry.contract import (
    FilmNotFound,
    FilmRegistry,
    RegistryNotDeployed,
    ValidationError,
    deploy_registry,
    film_added_listeners,
)
import httpx
import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SIGNER_SERVICE_URL = os.getenv("SIGNER_SERVICE_URL", "http://signer-service:8000")
ZERO_VALUE_READS = os.getenv("ZERO_VALUE_READS", "0").lower() in ("1", "true", "yes")

app = FastAPI(
    title="Film registry service",
    description="Append-only registry of rated films",
    version="1.0.0"
)


@film_added_listeners.subscribe
def log_film_added(registry_address: str, event: FilmAdded) -> None:
    logger.info(
        f"FilmAdded({event.position}, {event.name!r}, {event.rating}, {event.review!r}) "
        f"on {registry_address}"
    )


@app.on_event("startup")
async def startup_event():
    logger.info("Launching the film registry service...")
    wait_for_db()
    logger.info("The service is ready to work")


async def get_caller(token: str) -> str:
    """Resolve the calling account's address from a signer token."""
    try:
        async with httpx.AsyncClient() as client:
            r = await client.post(f"{SIGNER_SERVICE_URL}/verify", json={"token": token})
    except httpx.HTTPError as e:
        logger.error(f"Signer service unreachable: {type(e).__name__}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Signer service unavailable"
        )
    if r.status_code != 200:
        raise HTTPException(status_code=401, detail="Invalid token")
    return r.json()["address"]


def get_registry(address: str, session: Session = Depends(get_session)) -> FilmRegistry:
    try:
        return FilmRegistry(session, address, zero_value_reads=ZERO_VALUE_READS)
    except RegistryNotDeployed:
        logger.warning(f"A non-existent registry was requested {address}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Registry not deployed"
        )


@app.post("/deployments",
          response_model=DeploymentRead,
          status_code=status.HTTP_201_CREATED,
          summary="Deploy a new, empty film registry",
          response_description="The address of the new registry")
async def deploy(
    caller: str = Depends(get_caller),
    session: Session = Depends(get_session)
):
    try:
        deployment = deploy_registry(session, caller)
    except Exception as e:
        logger.error(f"Error when deploying a registry: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Couldn't deploy a registry"
        )
    return DeploymentRead(
        address=deployment.address,
        deployer=deployment.deployer,
        created_at=deployment.created_at,
        film_count=0,
    )


@app.get("/deployments/{address}",
         response_model=DeploymentRead,
         summary="Get a deployed registry",
         responses={
             404: {"description": "Registry not deployed"}
         })
async def read_deployment(registry: FilmRegistry = Depends(get_registry)):
    deployment = registry.session.get(Deployment, registry.address)
    return DeploymentRead(
        address=deployment.address,
        deployer=deployment.deployer,
        created_at=deployment.created_at,
        film_count=registry.get_film_count(),
    )


@app.post("/registries/{address}/films",
          response_model=FilmAdded,
          status_code=status.HTTP_201_CREATED,
          summary="Add a rated film",
          response_description="The FilmAdded event of the new record",
          responses={
              400: {"description": "Rating out of range"},
              404: {"description": "Registry not deployed"}
          })
async def add_film(
    film: FilmCreate,
    caller: str = Depends(get_caller),
    registry: FilmRegistry = Depends(get_registry)
):
    try:
        event = registry.add_film(film.name, film.rating, film.review)
    except ValidationError as e:
        logger.warning(f"Rejected film from {caller}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"Error when adding a film: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Couldn't add a film"
        )
    logger.info(f"A new film has been added by {caller}: position {event.position}, {event.name}")
    return event


@app.get("/registries/{address}/films",
         response_model=List[FilmRead],
         summary="Get every film in insertion order")
async def get_all_films(registry: FilmRegistry = Depends(get_registry)):
    films = registry.get_all_films()
    logger.info(f"A list of films was requested, {len(films)} entries were found")
    return films


@app.get("/registries/{address}/films/count",
         summary="Get the number of films")
async def get_film_count(registry: FilmRegistry = Depends(get_registry)):
    return {"count": registry.get_film_count()}


@app.get("/registries/{address}/films/{position}",
         response_model=FilmRead,
         summary="Get a film by position",
         responses={
             404: {"description": "No film at this position"}
         })
async def read_film(
    position: int = Path(..., ge=0),
    registry: FilmRegistry = Depends(get_registry)
):
    try:
        return registry.films(position)
    except FilmNotFound:
        logger.warning(f"A non-existent film position was requested {position}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="The film was not found"
        )


@app.get("/registries/{address}/events",
         response_model=List[FilmAdded],
         summary="Get FilmAdded events in append order")
async def read_events(
    since: int = Query(0, ge=0),
    registry: FilmRegistry = Depends(get_registry)
):
    return registry.events(since)
