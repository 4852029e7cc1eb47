"""
MongoDB access for the marketplace.

A ``Store`` wraps one pymongo ``Database``. It is built once at start-up and
handed to request handlers through ``get_store``; nothing here is global.

Collections are named after the lowercase schema model:
- User -> "user"
- Product -> "product"
- Order -> "order"
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import structlog
from fastapi import Request
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

logger = structlog.get_logger(__name__)

USERS = "user"
PRODUCTS = "product"
ORDERS = "order"


class Store:
    def __init__(self, db: Database, client: Optional[MongoClient] = None):
        self.db = db
        self._client = client

    @classmethod
    def connect(cls, database_url: str, database_name: str) -> "Store":
        client = MongoClient(database_url)
        logger.info("database_connecting", database_name=database_name)
        return cls(client[database_name], client)

    def __getitem__(self, name: str):
        return self.db[name]

    def ensure_indexes(self) -> None:
        # email uniqueness lives in the database, not in a read-then-write check
        self.db[USERS].create_index([("email", ASCENDING)], unique=True, name="email_unique")
        self.db[PRODUCTS].create_index([("farmerEmail", ASCENDING)], name="farmer_email")

    def create_document(self, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
        """Insert a document stamped with created_at/updated_at and return its id as a string."""
        if isinstance(data, BaseModel):
            data_dict = data.model_dump(by_alias=True)
        else:
            data_dict = dict(data)
        now = datetime.now(timezone.utc)
        data_dict["created_at"] = now
        data_dict["updated_at"] = now
        result = self.db[collection_name].insert_one(data_dict)
        return str(result.inserted_id)

    def get_documents(
        self,
        collection_name: str,
        filter_dict: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        cursor = self.db[collection_name].find(filter_dict or {})
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info("database_connection_closed")


def get_store(request: Request) -> Store:
    return request.app.state.store
