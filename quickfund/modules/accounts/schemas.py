from pydantic import BaseModel
from datetime import datetime
from decimal import Decimal


class VirtualAccountResponse(BaseModel):
    """Virtual account details"""
    id: int
    user_id: int
    account_number: str
    bank_name: str
    balance: Decimal
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True
