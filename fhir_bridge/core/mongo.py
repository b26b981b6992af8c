"""
MongoDB client singleton and index management.

Provides a pooled MongoClient configured from settings and helpers to get collections.
Creates the unique (resource_type, idempotency_key) index that deduplicates
submissions across every process sharing the database.
"""
from __future__ import annotations

import logging
from typing import Optional

from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection

from .config import Settings

logger = logging.getLogger(__name__)


def ensure_indexes(jobs: Collection) -> None:
    # Idempotency unique index; the only deduplication mechanism
    jobs.create_index(
        [("resource_type", ASCENDING), ("idempotency_key", ASCENDING)],
        name="uniq_resource_idempotency",
        unique=True,
    )
    jobs.create_index([("status", ASCENDING)], name="status_idx")
    jobs.create_index([("created_at", ASCENDING)], name="created_idx")


class Mongo:
    _client: Optional[MongoClient] = None

    @classmethod
    def init(cls, settings: Settings) -> None:
        if cls._client is not None:
            return
        logger.info("mongo_connect", extra={"database": settings.MONGO_DATABASE})
        cls._client = MongoClient(
            settings.MONGO_URI,
            appname=settings.APP_NAME,
            minPoolSize=2,
            maxPoolSize=50,
        )
        ensure_indexes(cls._client[settings.MONGO_DATABASE][settings.JOBS_COLLECTION])

    @classmethod
    def client(cls) -> MongoClient:
        if cls._client is None:
            raise RuntimeError("Mongo client not initialized. Call Mongo.init(settings) on startup.")
        return cls._client

    @classmethod
    def collection(cls, settings: Settings, which: str) -> Collection:
        db = cls.client()[settings.MONGO_DATABASE]
        if which == "jobs":
            return db[settings.JOBS_COLLECTION]
        raise ValueError(f"Unknown collection alias: {which}")

    @classmethod
    def close(cls) -> None:
        if cls._client is not None:
            try:
                cls._client.close()
            finally:
                cls._client = None
