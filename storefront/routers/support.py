import html
import logging

from fastapi import APIRouter, Depends

from ..config import Settings
from ..deps import get_mailer, get_settings
from ..schemas import ContactRequest
from ..utils import success

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/support", tags=["support"])


@router.post("/contact")
def contact(payload: ContactRequest, settings: Settings = Depends(get_settings), mailer=Depends(get_mailer)):
    inbox = settings.admin_email or settings.email_from
    rows = [("Name", payload.name), ("Email", payload.email), ("Subject", payload.subject)]
    if payload.order_id:
        rows.append(("Order", payload.order_id))
    body = "".join(f"<p><strong>{label}:</strong> {html.escape(str(value))}</p>" for label, value in rows)
    body += f"<p>{html.escape(payload.message)}</p>"
    mailer.send(
        to=inbox,
        subject=f"[Support] {payload.subject}",
        html=body,
        text="\n".join(f"{label}: {value}" for label, value in rows) + f"\n\n{payload.message}",
    )
    logger.info("Support request from %s forwarded to %s", payload.email, inbox)
    return success("Your message has been sent. Our team will get back to you soon.", status_code=201)
