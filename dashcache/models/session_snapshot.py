from datetime import datetime
from typing import Optional
from sqlalchemy import Column, Boolean
from sqlmodel import Field, SQLModel


class SessionSnapshot(SQLModel, table=True):
    __tablename__ = "session_snapshot"

    # one row per fixed namespace
    namespace: str = Field(primary_key=True)
    client_token: Optional[str] = Field(default=None)
    valid_token: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    require_client_token: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    updated_at: datetime = Field(default_factory=datetime.now)
