"""
JSON helpers for values that aren't natively JSON-serializable.

Used for repository JSON columns (addresses, line items) where pydantic
models are not involved.

Example:
    >>> json_dumps({"id": uuid4(), "amount": Decimal("9.99")})
    '{"id": "...", "amount": "9.99"}'
"""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class ShopflowJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for UUID, datetime, date, Decimal and Enum values.

    Decimals are written as strings so amounts survive a round trip
    without float rounding.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime | date):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def json_dumps(obj: Any) -> str:
    return json.dumps(obj, cls=ShopflowJSONEncoder)


def json_loads(s: str | bytes) -> Any:
    """
    Deserialize a JSON string.

    UUID, datetime and Decimal strings are NOT converted back; that's the
    caller's responsibility.
    """
    return json.loads(s)
