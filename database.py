# database.py
"""
HybridX MongoDB Database Connection.

One Motor client per process with Beanie on top. Datetimes come back
naive (UTC); repositories attach the timezone.
"""

import logging
from typing import List, Optional, Type

from beanie import Document, init_beanie
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


def document_models() -> List[Type[Document]]:
    """Collections managed by Beanie: users, programs and workoutSessions."""
    from hybridx.models.mongodb import ProgramDocument, UserDocument, WorkoutSessionDocument

    return [UserDocument, ProgramDocument, WorkoutSessionDocument]


class Database:
    """MongoDB connection manager."""

    client: Optional[AsyncIOMotorClient] = None
    _initialized: bool = False

    @classmethod
    async def connect_db(cls, database_url: str, database_name: str) -> None:
        """
        Connect and initialize Beanie, which also builds the indexes
        (including the unique session key on user and date).

        Raises:
            PyMongoError: the server could not be reached.
        """
        if cls._initialized:
            return

        client = AsyncIOMotorClient(
            database_url,
            serverSelectionTimeoutMS=5000,
            maxPoolSize=50,
            tz_aware=False,
        )
        try:
            await client.admin.command("ping")
            await init_beanie(database=client[database_name], document_models=document_models())
        except PyMongoError as e:
            logger.error(f"Error connecting to MongoDB: {e}")
            client.close()
            raise

        cls.client = client
        cls._initialized = True
        logger.info(f"Connected to MongoDB database {database_name}")

    @classmethod
    async def ensure_connected(cls, database_url: str, database_name: str) -> bool:
        """Connect if needed; False when the database is unreachable."""
        if cls._initialized:
            return True
        try:
            await cls.connect_db(database_url, database_name)
        except PyMongoError:
            return False
        return True

    @classmethod
    async def close_db(cls) -> None:
        if cls.client:
            cls.client.close()
            cls.client = None
            cls._initialized = False
            logger.info("MongoDB connection closed")

    @classmethod
    async def ping(cls) -> bool:
        if not cls.client:
            return False
        try:
            await cls.client.admin.command("ping")
        except PyMongoError:
            return False
        return True
