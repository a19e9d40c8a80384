import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from pymongo import MongoClient

from config import DATABASE_URL, DATABASE_NAME, PREDICTIONS_COLLECTION
from schemas import SUGGESTIONS, PredictionRecord

logger = logging.getLogger(__name__)

# Database helpers (safe even if DB not configured)
client = None
db = None
if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


class DatabaseNotConfigured(RuntimeError):
    pass


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_prediction_record(label: str) -> PredictionRecord:
    return PredictionRecord(
        id=str(uuid.uuid4()),
        result=label,
        suggestion=SUGGESTIONS[label],
        createdAt=utc_timestamp(),
    )


class PredictionStore:
    def __init__(self, collection):
        self.collection = collection

    def save(self, record: PredictionRecord) -> str:
        # insert_one rejects an existing _id, so a document is never overwritten
        document = {"_id": record.id, **record.model_dump()}
        self.collection.insert_one(document)
        logger.info("Stored prediction %s (%s)", record.id, record.result)
        return record.id

    def get(self, record_id: str) -> Optional[PredictionRecord]:
        document = self.collection.find_one({"_id": record_id})
        if document is None:
            return None
        document.pop("_id", None)
        return PredictionRecord(**document)


def get_prediction_store() -> PredictionStore:
    if db is None:
        raise DatabaseNotConfigured("DATABASE_URL and DATABASE_NAME must be set")
    return PredictionStore(db[PREDICTIONS_COLLECTION])
