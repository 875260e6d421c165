import uuid
from decimal import Decimal

from pydantic import BaseModel


class PayoutTotals(BaseModel):
    workshop_id: uuid.UUID
    total_jobs: int
    total_amount: Decimal
    commission: Decimal
    workshop_amount: Decimal
