"""
Entity-typed access to a Motor collection.
"""

from typing import Any, Generic, TypeVar

from ..utils.mongo import to_object_id
from .base import Entity

T = TypeVar("T", bound=Entity)


class MongoRepository(Generic[T]):
    """
    Reads return entities; writes take raw update documents so callers can
    use `$inc`, `$unset` and pipeline updates without a round trip.
    """

    def __init__(self, collection: Any, entity_class: type[T]):
        self._collection = collection  # AsyncIOMotorCollection
        self._entity_class = entity_class

    def _to_entity(self, doc: dict[str, Any] | None) -> T | None:
        return self._entity_class.from_document(doc)

    async def get(self, id: str | None) -> T | None:
        if not id:
            return None
        return self._to_entity(await self._collection.find_one({"_id": to_object_id(id)}))

    async def find_one(self, filter: dict[str, Any]) -> T | None:
        return self._to_entity(await self._collection.find_one(filter))

    async def update_many(self, filter: dict[str, Any], update: dict[str, Any]) -> int:
        """Returns the number of modified documents."""
        result = await self._collection.update_many(filter, update)
        return result.modified_count
