from sqlmodel import SQLModel, Field


class Account(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    hashed_password: str
    address: str = Field(index=True, unique=True, max_length=42)
    is_active: bool = Field(default=True)


class AccountRead(SQLModel):
    email: str
    address: str
    is_active: bool
