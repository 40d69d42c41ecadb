"""
Presale Admin - Document Store
==============================
Reads and writes for the four collections kept in MongoDB:

    admins          - the single admin credential (bcrypt hash + initialized flag)
    presaleends     - singleton: presale end date/time
    progressbars    - singleton: progress bar percentage (0-100)
    walletaddresses - append-only set of lowercase wallet addresses

Singletons are created under a fixed _id with one atomic upsert, so
concurrent first writes cannot create two documents; later writes update
the newest existing document. Wallet addresses are protected by a unique
index when the stored data allows one.

Every pymongo failure is re-raised as StoreError so the route layer can
answer with a generic 500.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from presale.database import ConnectionManager
from presale.errors import ConflictError, StoreError

logger = logging.getLogger("presale.store")

ADMINS = "admins"
PRESALE_END = "presaleends"
PROGRESS_BAR = "progressbars"
WALLET_ADDRESSES = "walletaddresses"

PRESALE_END_ID = "presale-end"
PROGRESS_BAR_ID = "progress-bar"

NEWEST_FIRST = [("createdAt", DESCENDING), ("_id", DESCENDING)]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


@contextmanager
def _store_errors(operation: str):
    """Translate pymongo failures into StoreError."""
    try:
        yield
    except PyMongoError as e:
        raise StoreError(f"{operation} failed") from e


class PresaleStore:
    """
    Collection access for all record kinds.

    Attributes:
        connection: The ConnectionManager every operation goes through.
    """

    def __init__(self, connection: ConnectionManager):
        self.connection = connection
        connection.add_connect_hook(ensure_indexes)

    @property
    def db(self) -> Database:
        return self.connection.database

    # -- Admin credential -----------------------------------------------------

    def get_admin(self) -> dict | None:
        """Return the admin credential document, if any."""
        with _store_errors("admin lookup"):
            return self.db[ADMINS].find_one()

    def create_admin(self, password_hash: str) -> dict:
        doc = {
            "password": password_hash,
            "initialized": True,
            "createdAt": now_utc(),
            "updatedAt": now_utc(),
        }
        with _store_errors("admin create"):
            doc["_id"] = self.db[ADMINS].insert_one(doc).inserted_id
        return doc

    def update_admin(self, admin_id: Any, password_hash: str) -> None:
        with _store_errors("admin update"):
            self.db[ADMINS].update_one(
                {"_id": admin_id},
                {"$set": {
                    "password": password_hash,
                    "initialized": True,
                    "updatedAt": now_utc(),
                }},
            )

    # -- Singletons -----------------------------------------------------------

    def save_presale_end(self, end: datetime) -> dict:
        return self._upsert_singleton(PRESALE_END, PRESALE_END_ID, {"endDateTime": end})

    def latest_presale_end(self) -> dict | None:
        return self._latest(PRESALE_END)

    def save_progress(self, value: float) -> dict:
        return self._upsert_singleton(PROGRESS_BAR, PROGRESS_BAR_ID, {"value": value})

    def latest_progress(self) -> dict | None:
        return self._latest(PROGRESS_BAR)

    def _upsert_singleton(self, collection: str, key: str, fields: dict) -> dict:
        """
        Update the newest existing document, or create one under the fixed key.

        Documents written before the fixed key was introduced carry an
        ObjectId; the newest of them is updated in place rather than
        shadowed by a second document.
        """
        now = now_utc()
        update = {
            "$set": {**fields, "updatedAt": now},
            "$setOnInsert": {"createdAt": now},
        }
        with _store_errors(f"{collection} save"):
            coll = self.db[collection]
            current = next(iter(coll.find({}).sort(NEWEST_FIRST).limit(1)), None)
            if current is not None:
                return coll.find_one_and_update(
                    {"_id": current["_id"]}, {"$set": update["$set"]},
                    return_document=ReturnDocument.AFTER,
                )
            try:
                return coll.find_one_and_update(
                    {"_id": key}, update,
                    upsert=True, return_document=ReturnDocument.AFTER,
                )
            except DuplicateKeyError:
                logger.info("Concurrent first write to %s, retrying as update", collection)
                return coll.find_one_and_update(
                    {"_id": key}, {"$set": update["$set"]},
                    return_document=ReturnDocument.AFTER,
                )

    def _latest(self, collection: str) -> dict | None:
        with _store_errors(f"{collection} lookup"):
            cursor = self.db[collection].find({}).sort(NEWEST_FIRST).limit(1)
            return next(iter(cursor), None)

    # -- Wallet addresses -----------------------------------------------------

    def find_wallet(self, address: str) -> dict | None:
        with _store_errors("wallet lookup"):
            return self.db[WALLET_ADDRESSES].find_one({"address": address})

    def add_wallet(self, address: str) -> dict:
        """
        Insert a new wallet address.

        Args:
            address: Already-normalized (lowercase) address.

        Raises:
            ConflictError: If the address is already stored. The existing
                record is attached as error.data.
        """
        existing = self.find_wallet(address)
        if existing is not None:
            logger.info("Wallet address already registered")
            raise ConflictError("Address already exists", data=serialize(existing))

        now = now_utc()
        doc = {"address": address, "createdAt": now, "updatedAt": now}
        with _store_errors("wallet insert"):
            try:
                doc["_id"] = self.db[WALLET_ADDRESSES].insert_one(doc).inserted_id
            except DuplicateKeyError as e:
                # Concurrent insert of the same address won the unique index
                raise ConflictError(
                    "Address already exists", data=serialize(self.find_wallet(address))
                ) from e
        return doc

    def list_wallets(self) -> list[dict]:
        with _store_errors("wallet list"):
            return list(self.db[WALLET_ADDRESSES].find({}).sort(NEWEST_FIRST))


def ensure_indexes(db: Database) -> None:
    """
    Create the indexes the store relies on. Idempotent.

    A failure is logged and skipped: wallet data written before the unique
    index existed may hold duplicate addresses, and the service must still
    come up. add_wallet's lookup keeps rejecting repeats without the index.
    """
    indexes = [
        ([("address", ASCENDING)], {"unique": True}),
        ([("createdAt", DESCENDING)], {}),
    ]
    for keys, options in indexes:
        try:
            db[WALLET_ADDRESSES].create_index(keys, **options)
        except PyMongoError as e:
            logger.warning("Could not create index %s on %s: %s", keys, WALLET_ADDRESSES, e)


def serialize(doc: dict | None) -> dict | None:
    """Make a stored document JSON-safe (ObjectId -> str, datetime -> ISO-8601)."""
    if doc is None:
        return None
    result = {}
    for key, value in doc.items():
        if isinstance(value, ObjectId):
            value = str(value)
        elif isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            value = value.isoformat()
        result[key] = value
    return result
