"""Simulated card processor"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from quickfund.core.config import settings
from quickfund.core.exceptions import PaymentDeclinedError
from quickfund.core.generators import generate_transaction_id

logger = logging.getLogger(__name__)


def luhn_valid(card_number: str) -> bool:
    digits = [int(d) for d in card_number]
    checksum = 0
    for i, digit in enumerate(reversed(digits)):
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        checksum += digit
    return checksum % 10 == 0


def expiry_valid(expiry: str, now: Optional[datetime] = None) -> bool:
    """MM/YY, valid through the end of the printed month"""
    try:
        month_str, year_str = expiry.split("/")
        month, year = int(month_str), 2000 + int(year_str)
    except ValueError:
        return False
    if not 1 <= month <= 12 or len(year_str) != 2:
        return False

    now = now or datetime.utcnow()
    return (year, month) >= (now.year, now.month)


class CardGateway:
    def __init__(self, delay: Optional[float] = None):
        self.delay = settings.CARD_GATEWAY_DELAY_SECONDS if delay is None else delay

    def check(self, card_number: Optional[str], expiry: Optional[str], cvv: Optional[str]) -> None:
        """Raises PaymentDeclinedError naming the first failed check"""
        number = (card_number or "").replace(" ", "")
        if not (13 <= len(number) <= 19 and number.isdigit() and luhn_valid(number)):
            raise PaymentDeclinedError("Invalid card number")
        if not expiry or not expiry_valid(expiry):
            raise PaymentDeclinedError("Card has expired or expiry is invalid")
        if not cvv or not cvv.isdigit() or len(cvv) not in (3, 4):
            raise PaymentDeclinedError("Invalid CVV")

    async def charge(self, card_number: Optional[str], expiry: Optional[str], cvv: Optional[str]) -> str:
        """Returns the gateway transaction id"""
        self.check(card_number, expiry, cvv)
        if self.delay:
            await asyncio.sleep(self.delay)

        gateway_ref = generate_transaction_id()
        logger.info(f"Card charge approved: {gateway_ref}")
        return gateway_ref
