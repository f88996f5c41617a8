from __future__ import annotations

from typing import Annotated

from pydantic import BeforeValidator, Field, StringConstraints


def _to_stripped_str(v):
    if v is None:
        return v
    return str(v).strip()


# Customer names are display keys in the sheet; matching is case-insensitive
# downstream, so only surrounding whitespace is normalized here.
CustomerName = Annotated[
    str,
    BeforeValidator(_to_stripped_str),
    StringConstraints(min_length=1, max_length=120),
]

# Stable receipt ids are UUID strings assigned by the client.
ReceiptId = Annotated[
    str,
    BeforeValidator(_to_stripped_str),
    StringConstraints(pattern=r"^[0-9a-fA-F-]{36}$"),
]

Password = Annotated[str, BeforeValidator(_to_stripped_str), StringConstraints(max_length=256)]

# Amounts relayed to the sheet must survive JSON encoding: no NaN/Infinity.
Money = Annotated[float, Field(allow_inf_nan=False)]
NonNegativeMoney = Annotated[float, Field(ge=0, allow_inf_nan=False)]
