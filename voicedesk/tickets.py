# tickets.py
"""Replacement / refund tickets, filed as e-mails to the support inbox."""
import html
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from .mailer import MailMessage

logger = logging.getLogger(__name__)


@dataclass
class Ticket:
    kind: str  # "Refund" | "Replacement"
    order_number: str
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    items: Optional[str] = None
    reason: Optional[str] = None
    preferred_resolution: Optional[str] = None

    def fields(self) -> List[tuple]:
        rows = [
            ("Name", self.customer_name),
            ("Email", self.customer_email or "MISSING - MUST OBTAIN"),
            ("Phone", self.customer_phone or "Not provided"),
            ("Order Number", f"#{self.order_number}"),
            ("Reason", self.reason or "Not specified"),
            ("Items Affected", self.items or "All items in order"),
        ]
        if self.preferred_resolution:
            rows.append(("Customer Preference", self.preferred_resolution))
        return rows


def render_ticket(ticket: Ticket, support_inbox: str, cc: List[str]) -> MailMessage:
    missing_email = not ticket.customer_email
    subject = f"[{ticket.kind} Request] Order #{ticket.order_number} - {ticket.customer_name}"
    if missing_email:
        subject += " - NO CUSTOMER EMAIL"

    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    rows = "".join(
        f"<li><strong>{label}:</strong> {html.escape(str(value))}</li>" for label, value in ticket.fields()
    )
    warning = (
        '<div style="background: #ffcccc; padding: 10px; border: 2px solid red;">'
        "<strong>Customer email missing - cannot CC customer. Please obtain email and communicate directly.</strong>"
        "</div>"
    ) if missing_email else ""
    body_html = f"""
    <h2>{ticket.kind} Request - Order #{ticket.order_number}</h2>
    {warning}
    <ul>{rows}</ul>
    <p>Please process this {ticket.kind.lower()} request and update the customer within 24 hours.</p>
    <hr>
    <p><small>Generated from a customer call on {stamp}</small></p>
    """
    body_text = "\n".join(
        [f"{ticket.kind} Request - Order #{ticket.order_number}", ""]
        + [f"- {label}: {value}" for label, value in ticket.fields()]
        + ["", f"Please process this {ticket.kind.lower()} request and update the customer within 24 hours.",
           f"Generated from a customer call on {stamp}"]
    )

    cc_list = list(cc)
    if ticket.customer_email:
        cc_list.append(ticket.customer_email)

    return MailMessage(
        to=support_inbox,
        subject=subject,
        html=body_html,
        text=body_text,
        cc=cc_list,
        headers={
            "X-Priority": "1" if missing_email else "2",
            "X-Order-Number": str(ticket.order_number),
            "X-Ticket-Type": ticket.kind,
            "X-Missing-Customer-Email": "true" if missing_email else "false",
        },
    )


class TicketDesk:
    def __init__(self, mailer, support_inbox: str, cc: Optional[List[str]] = None):
        self.mailer = mailer
        self.support_inbox = support_inbox
        self.cc = cc or []

    @property
    def configured(self) -> bool:
        return bool(self.support_inbox) and self.mailer.configured

    async def file(self, ticket: Ticket) -> str:
        if not ticket.customer_email:
            logger.warning(f"No customer email for order #{ticket.order_number}; ticket sent without customer CC")
        message_id = await self.mailer.send(render_ticket(ticket, self.support_inbox, self.cc))
        logger.info(f"{ticket.kind} ticket sent for order #{ticket.order_number}: {message_id}")
        return message_id
