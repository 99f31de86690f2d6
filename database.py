"""MongoDB access: connection lifecycle, the order store and the user store."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, AsyncMongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

import errors
from schemas import Order, OrderDraft, UserOut

logger = structlog.get_logger(__name__)

REQUIRED_ORDER_FIELDS = ("productId", "productName", "price", "userEmail")


# ---------- Helpers ----------

def doc_to_dict(doc: dict) -> dict:
    out = {}
    for k, v in doc.items():
        if isinstance(v, ObjectId):
            out[k] = str(v)
        elif isinstance(v, datetime):
            out[k] = v.isoformat()
        else:
            out[k] = v
    if "_id" in out:
        out["id"] = out.pop("_id")
    return out


def to_object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# ---------- Connection ----------

class Database:
    """Owns the Mongo client for the lifetime of the application.

    A client can be injected (tests pass an in-memory one); otherwise one is
    built from ``uri`` on :meth:`connect` and pinged before use.
    """

    def __init__(self, uri: Optional[str] = None, name: str = "storefront",
                 client: Any = None, timeout_ms: int = 5000):
        self.uri = uri
        self.name = name
        self.timeout_ms = timeout_ms
        self.client = client
        self._owns_client = client is None
        self.db = None

    async def connect(self) -> None:
        if self.client is None:
            if not self.uri:
                raise errors.ConfigurationError("MONGO_URI is not defined")
            self.client = AsyncMongoClient(
                self.uri, tz_aware=True, serverSelectionTimeoutMS=self.timeout_ms
            )
            try:
                await self.client.admin.command("ping")
            except PyMongoError:
                await self.client.close()
                self.client = None
                raise
        self.db = self.client[self.name]
        await self.ensure_indexes()
        logger.info("MongoDB connected", database=self.name)

    async def ensure_indexes(self) -> None:
        await self.db["orders"].create_index([("userEmail", ASCENDING), ("createdAt", DESCENDING)])
        await self.db["users"].create_index("email", unique=True)

    async def close(self) -> None:
        if self.client is not None and self._owns_client:
            await self.client.close()
            logger.info("MongoDB connection closed")
        self.db = None

    async def status(self) -> Dict[str, Any]:
        if self.db is None:
            return {"database": "Not Connected", "collections": []}
        try:
            collections = await self.db.list_collection_names()
        except PyMongoError as e:
            return {"database": f"Connected but Error: {str(e)[:50]}", "collections": []}
        return {"database": "Connected & Working", "collections": collections[:10]}


# ---------- Orders ----------

class OrderStore:
    def __init__(self, collection):
        self.collection = collection

    async def create(self, draft: OrderDraft, user_id: Optional[str] = None) -> Order:
        data = draft.model_dump(by_alias=True, exclude_none=True)
        missing = [f for f in REQUIRED_ORDER_FIELDS if _is_blank(data.get(f))]
        if missing:
            raise errors.ValidationError(fields=missing)

        data.setdefault("quantity", 1)
        if user_id:
            data["userId"] = user_id
        data["createdAt"] = utcnow()

        try:
            result = await self.collection.insert_one(data)
            saved = await self.collection.find_one({"_id": result.inserted_id})
        except PyMongoError as e:
            logger.error("Error saving order", error=str(e))
            raise errors.ServerError() from e
        return Order(**doc_to_dict(saved))

    async def list_by_purchaser(self, email: str) -> List[Order]:
        if not email or not email.strip() or email == "undefined":
            raise errors.InvalidArgument("Invalid email")
        try:
            cursor = self.collection.find(
                {"userEmail": email},
                sort=[("createdAt", DESCENDING), ("_id", DESCENDING)],
            )
            docs = [doc async for doc in cursor]
        except PyMongoError as e:
            logger.error("Fetch orders error", error=str(e))
            raise errors.ServerError("Error fetching orders") from e
        return [Order(**doc_to_dict(d)) for d in docs]

    async def find_by_id(self, order_id: str) -> Order:
        oid = to_object_id(order_id)
        if oid is None:
            raise errors.NotFound("Order not found")
        try:
            doc = await self.collection.find_one({"_id": oid})
        except PyMongoError as e:
            logger.error("Fetch order error", order_id=order_id, error=str(e))
            raise errors.ServerError() from e
        if not doc:
            raise errors.NotFound("Order not found")
        return Order(**doc_to_dict(doc))

    async def delete_by_id(self, order_id: str) -> None:
        oid = to_object_id(order_id)
        if oid is None:
            raise errors.NotFound("Order not found")
        try:
            result = await self.collection.delete_one({"_id": oid})
        except PyMongoError as e:
            logger.error("Delete order error", order_id=order_id, error=str(e))
            raise errors.ServerError("Failed to cancel order") from e
        if result.deleted_count == 0:
            raise errors.NotFound("Order not found")


# ---------- Users ----------

class UserStore:
    def __init__(self, collection):
        self.collection = collection

    async def create(self, name: str, email: str, password_hash: str) -> UserOut:
        doc = {"name": name, "email": email, "password": password_hash, "createdAt": utcnow()}
        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError:
            raise errors.Conflict("User already exists")
        except PyMongoError as e:
            logger.error("Error creating user", error=str(e))
            raise errors.ServerError() from e
        doc["_id"] = result.inserted_id
        doc.pop("password")
        return UserOut(**doc_to_dict(doc))

    async def find_by_email(self, email: str) -> Optional[dict]:
        """Return the raw user document, password hash included."""
        try:
            return await self.collection.find_one({"email": email})
        except PyMongoError as e:
            logger.error("Fetch user error", error=str(e))
            raise errors.ServerError() from e

    async def list_all(self) -> List[UserOut]:
        try:
            docs = [doc async for doc in self.collection.find({}, {"password": 0})]
        except PyMongoError as e:
            logger.error("Fetch users error", error=str(e))
            raise errors.ServerError() from e
        return [UserOut(**doc_to_dict(d)) for d in docs]
