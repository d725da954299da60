from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
import uuid

ZERO = Decimal("0.00")


def gen_id() -> str:
    return str(uuid.uuid4())


class TimeStamped(BaseModel):
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def touch(self, at: datetime | None = None):
        object.__setattr__(self, "updated_at", at or datetime.utcnow())
