from datetime import date
from typing import Annotated, Any

from pydantic import BeforeValidator, PlainSerializer

from pld_scheduler.services.dates import from_key, to_key


def _parse_wire_date(value: Any) -> Any:
    # Dates cross the API boundary only as YYYY-MM-DD
    if isinstance(value, str):
        return from_key(value).date()
    return value


WireDate = Annotated[
    date,
    BeforeValidator(_parse_wire_date),
    PlainSerializer(to_key, return_type=str),
]
