from fastapi import FastAPI, Depends, HTTPException, status, Query
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sqlmodel import select, Session
from passlib.context import CryptContext
from jose import JWTError, jwt
from datetime import datetime, timedelta, timezone
import os
import secrets
from typing import Optional
from ledger.models import Account, AccountRead
from ledger.db import get_session, wait_for_db
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Signer service",
    description="Accounts and call tokens for the film registry",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key-here")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))


class TokenIn(BaseModel):
    token: str


class Caller(BaseModel):
    email: str
    address: str


@app.on_event("startup")
async def startup_event():
    logger.info("Starting signer service...")
    wait_for_db()
    logger.info("Service ready")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def new_address() -> str:
    """Random 20-byte account address, hex encoded with a 0x prefix."""
    return "0x" + secrets.token_hex(20)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


async def get_account_by_email(session: Session, email: str) -> Optional[Account]:
    result = session.exec(select(Account).where(Account.email == email))
    return result.first()


async def authenticate_account(session: Session, email: str, password: str) -> Optional[Account]:
    account = await get_account_by_email(session, email)
    if not account or not verify_password(password, account.hashed_password):
        return None
    return account


async def account_from_token(session: Session, token: str) -> Optional[Account]:
    """Active account a token was issued to, or None if the token is not valid."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    email = payload.get("sub")
    if email is None:
        return None

    account = await get_account_by_email(session, email)
    if account is None or not account.is_active or account.address != payload.get("addr"):
        return None
    return account


@app.post("/register",
          response_model=AccountRead,
          status_code=status.HTTP_201_CREATED)
async def register(
        email: str = Query(..., description="Account email"),
        password: str = Query(..., description="Account password"),
        session: Session = Depends(get_session)
):
    """Register an account and assign it a fresh address."""
    existing_account = await get_account_by_email(session, email)
    if existing_account:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    account = Account(
        email=email,
        hashed_password=get_password_hash(password),
        address=new_address(),
        is_active=True
    )

    session.add(account)
    session.commit()
    session.refresh(account)

    logger.info(f"New account registered: {account.email} -> {account.address}")
    return account


@app.post("/token")
async def login_for_access_token(
        form_data: OAuth2PasswordRequestForm = Depends(),
        session: Session = Depends(get_session)
):
    account = await authenticate_account(session, form_data.username, form_data.password)
    if not account:
        logger.warning(f"Failed login for {form_data.username}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(data={"sub": account.email, "addr": account.address})
    return {"access_token": access_token, "token_type": "bearer"}


@app.post("/verify", response_model=Caller)
async def verify(payload: TokenIn, session: Session = Depends(get_session)):
    """Check a call token for other services."""
    account = await account_from_token(session, payload.token)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )
    return Caller(email=account.email, address=account.address)


async def get_current_account(
        token: str = Depends(oauth2_scheme),
        session: Session = Depends(get_session)
) -> Account:
    account = await account_from_token(session, token)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return account


@app.get("/accounts/me", response_model=AccountRead)
async def read_accounts_me(current_account: Account = Depends(get_current_account)):
    return current_account
