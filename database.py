"""
MongoDB access for the pet adoption API.

A single ``Database`` is built at startup and handed to every route through the
``get_db`` dependency. Collection names follow the existing ``petsDB`` layout:
users, pets, donations, donationPayments, requests.
"""

import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Request
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database as MongoDatabase

from config import Settings
from errors import BadRequest

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, db: MongoDatabase, client: Optional[MongoClient] = None):
        self.db = db
        self.client = client
        self.users = db["users"]
        self.pets = db["pets"]
        self.donations = db["donations"]
        self.donation_payments = db["donationPayments"]
        self.requests = db["requests"]

    @property
    def name(self) -> str:
        return self.db.name

    def ensure_indexes(self) -> None:
        # One adoption request per (pet, requester); the route's pre-check is only best-effort.
        self.requests.create_index(
            [("petId", ASCENDING), ("adoptedReqByEmail", ASCENDING)],
            unique=True,
            name="uniq_pet_requester",
        )
        self.users.create_index([("email", ASCENDING)], name="user_email")
        self.pets.create_index([("petId", ASCENDING)], name="pet_id")
        logger.info("Indexes ensured on database %s", self.name)

    def close(self) -> None:
        if self.client is not None:
            self.client.close()


def connect(settings: Settings) -> Database:
    client = MongoClient(settings.database_url)
    logger.info("Connecting to MongoDB database %s", settings.database_name)
    return Database(client[settings.database_name], client=client)


def get_db(request: Request) -> Database:
    return request.app.state.db


# Helpers

def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise BadRequest("Invalid id")


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = {**doc}
    if isinstance(d.get("_id"), ObjectId):
        d["_id"] = str(d["_id"])
    return d


def insert_result(res) -> Dict[str, Any]:
    return {"acknowledged": res.acknowledged, "insertedId": str(res.inserted_id)}


def update_result(res) -> Dict[str, Any]:
    return {
        "acknowledged": res.acknowledged,
        "matchedCount": res.matched_count,
        "modifiedCount": res.modified_count,
    }


def delete_result(res) -> Dict[str, Any]:
    return {"acknowledged": res.acknowledged, "deletedCount": res.deleted_count}
