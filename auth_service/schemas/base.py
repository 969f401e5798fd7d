"""
Base schema with camelCase wire names and UTC datetime serialization.

Provides:
- CamelModel: fields declared in snake_case, exchanged as the clients'
  camelCase keys (``userID``, ``accessToken``...) via explicit aliases
- UTCDatetime: datetime serialized with a Z suffix indicating UTC
"""

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer


class CamelModel(BaseModel):
    """Accepts both alias and field name on input; FastAPI dumps by alias."""

    model_config = ConfigDict(populate_by_name=True)


# Custom datetime type that serializes with Z suffix for UTC
# Usage: created_at: UTCDatetime instead of created_at: datetime
UTCDatetime = Annotated[
    datetime,
    PlainSerializer(
        lambda dt: dt.strftime("%Y-%m-%dT%H:%M:%SZ") if dt else None,
        return_type=str,
    ),
]
