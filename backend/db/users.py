from fastapi import Depends
from fastapi_users.db import SQLAlchemyBaseUserTableUUID, SQLAlchemyUserDatabase
from sqlalchemy import Column, String
from sqlalchemy.ext.asyncio import AsyncSession
from core.config import settings
from .database import Base, get_async_session


class User(SQLAlchemyBaseUserTableUUID, Base):
    __tablename__ = "users"

    full_name = Column(String, nullable=True)
    # Partition key for every row the user creates or reads
    tenant_id = Column(String, nullable=False, default=lambda: settings.default_tenant_id, index=True)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "tenant_id": self.tenant_id,
        }


async def get_user_db(session: AsyncSession = Depends(get_async_session)):
    yield SQLAlchemyUserDatabase(session, User)
