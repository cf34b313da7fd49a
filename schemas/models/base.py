"""
Common base for the collection models.

Documents keep the MongoDB ``_id`` on ``id``. Reads from the driver are
normalised on the way in: hex strings become ObjectId and naive datetimes
(mongomock, or a client without tz_aware) are treated as UTC.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Optional, TypeVar

from bson import ObjectId
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    PlainValidator,
    field_validator,
)

from shared.datetime_utils import ensure_utc

ModelT = TypeVar("ModelT", bound="MongoBaseModel")


def _coerce_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise ValueError(f"Invalid ObjectId: {value!r}")


# Stays an ObjectId in Python and for pymongo, renders as hex in JSON
DocumentId = Annotated[
    ObjectId,
    PlainValidator(_coerce_object_id),
    PlainSerializer(str, when_used="json"),
]


class MongoBaseModel(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    id: Optional[DocumentId] = Field(default=None, alias="_id")

    @field_validator("*", mode="after")
    @classmethod
    def _datetimes_to_utc(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value

    def to_mongo(self) -> dict[str, Any]:
        """Dump for insert_one/replace_one; an unset ``_id`` is left to MongoDB."""
        data = self.model_dump(by_alias=True)
        if data.get("_id") is None:
            data.pop("_id", None)
        return data

    @classmethod
    def from_mongo(cls: type[ModelT], data: Optional[dict[str, Any]]) -> Optional[ModelT]:
        if data is None:
            return None
        return cls.model_validate(data)
