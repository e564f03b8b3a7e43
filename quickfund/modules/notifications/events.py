"""
Notification events emitted by the lending core.

Services return these alongside their result; they are handed to the
dispatcher only after the surrounding transaction has committed.
"""
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from quickfund.modules.notifications.models import NotificationType

SEND_NOTIFICATION_JOB = "send-notification"


class NotificationEvent(BaseModel):
    type: NotificationType
    user_id: int
    loan_id: Optional[int] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class RenderedNotification(BaseModel):
    title: str
    message: str
    admin_title: Optional[str] = None
    admin_message: Optional[str] = None


def format_naira(amount: Any) -> str:
    return f"₦{Decimal(str(amount)):,.2f}"


def render(event: NotificationEvent) -> RenderedNotification:
    """User-facing copy for an event, plus the admin feed summary where one applies"""
    data = event.data
    amount = format_naira(data.get("amount", 0))
    reference = data.get("reference", event.loan_id)

    if event.type == NotificationType.WELCOME:
        return RenderedNotification(
            title="Welcome to QuickFund!",
            message=(
                f"Welcome {data.get('first_name', '')}! Your account has been successfully created. "
                "You can now apply for loans and manage your finances."
            ),
        )

    if event.type == NotificationType.LOAN_APPLICATION:
        return RenderedNotification(
            title="Loan Application Received",
            message=f"Your loan application for {amount} has been received and is being processed.",
            admin_title="New Loan Application",
            admin_message=f"New loan application {reference} received for {amount}.",
        )

    if event.type == NotificationType.LOAN_APPROVED:
        return RenderedNotification(
            title="Loan Approved!",
            message=f"Congratulations! Your loan application for {amount} has been approved.",
            admin_title="Loan Application Approved",
            admin_message=f"Loan application {reference} for {amount} has been approved.",
        )

    if event.type == NotificationType.LOAN_REJECTED:
        return RenderedNotification(
            title="Loan Application Update",
            message=f"Your loan application for {amount} could not be approved at this time.",
            admin_title="Loan Application Rejected",
            admin_message=f"Loan application {reference} for {amount} has been rejected.",
        )

    if event.type == NotificationType.LOAN_DISBURSED:
        account_number = data.get("account_number", "")
        return RenderedNotification(
            title="Loan Disbursed!",
            message=f"Your loan of {amount} has been disbursed to your account {account_number}.",
            admin_title="Loan Disbursed",
            admin_message=f"Loan {reference} of {amount} has been disbursed to account {account_number}.",
        )

    # PAYMENT_RECEIVED
    return RenderedNotification(
        title="Payment Received!",
        message=f"Payment of {amount} has been received and applied to your loan.",
        admin_title="Payment Received",
        admin_message=f"Payment of {amount} received for loan {reference}.",
    )
