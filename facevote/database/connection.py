import logging
from functools import lru_cache

from pymongo import MongoClient

from .. import config

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def get_client(uri: str = config.MONGO_URI) -> MongoClient:
    # tz_aware so lock_until / election dates compare against aware datetimes
    return MongoClient(uri, tz_aware=True)


def get_database(uri: str = config.MONGO_URI, db_name: str = config.MONGO_DB):
    if not uri:
        raise ValueError("MONGO_URI not set. Check your .env file.")
    if not db_name:
        raise ValueError("MONGO_DB not set. Check your .env file.")
    return get_client(uri)[db_name]
