from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi.encoders import jsonable_encoder


def to_json_column(data: Any) -> Any:
    """Prepare gateway snapshots and request bodies for the JSON columns.

    Decimals become strings so amounts kept in ``webhook_data`` and
    ``customer_data`` never pass through a float.
    """
    return jsonable_encoder(data, custom_encoder={Decimal: str})
