from decimal import Decimal
from typing import Annotated
from pydantic import PlainSerializer

# Points/fare amounts: exact Decimal internally, plain JSON numbers on the wire
Money = Annotated[Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")]
