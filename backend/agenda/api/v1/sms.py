import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from twilio.twiml.messaging_response import MessagingResponse

from agenda.api.v1.deps import get_ledger, get_notifier, get_settings, rate_limited
from agenda.core.config import Settings
from agenda.core.database import get_db
from agenda.core.errors import NotAuthenticated
from agenda.services.db_service import DBService
from agenda.services.delivery_ledger import DeliveryLedger
from agenda.services.inbound import InboundMessage, InboundMessageHandler
from agenda.services.notifications import Notifier

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(rate_limited)])


@router.post("/incoming")
async def handle_incoming_sms(
    request: Request,
    settings: Settings = Depends(get_settings),
    ledger: DeliveryLedger = Depends(get_ledger),
    notifier: Notifier = Depends(get_notifier),
    db: AsyncSession = Depends(get_db),
):
    """Twilio webhook for inbound SMS."""
    form = await request.form()
    params = {k: str(v) for k, v in form.items()}

    if settings.twilio_validate_signature:
        signature = request.headers.get("x-twilio-signature", "")
        if not notifier.twilio.validate_request(str(request.url), params, signature):
            logger.warning("🔒 Rejected inbound SMS with invalid Twilio signature")
            raise NotAuthenticated("Invalid Twilio signature")

    message = InboundMessage(
        from_number=params.get("From", ""),
        to_number=params.get("To"),
        body=(params.get("Body") or "").strip(),
        message_sid=params.get("MessageSid"),
    )
    logger.info(f"📩 NEW SMS from {message.from_number} ({message.message_sid}): {message.body}")

    result = await InboundMessageHandler(DBService(db), settings, ledger).handle(message)

    response = MessagingResponse()
    if result.reply:
        response.message(result.reply)
        await notifier.log_outbound(
            result.tenant_id,
            "".join(ch for ch in message.from_number if ch.isdigit()),
            result.reply,
            {
                "in_reply_to": message.message_sid,
                "intent": result.intent.value,
                "appointment_id": result.appointment_id,
            },
        )
    return Response(content=str(response), media_type="application/xml")
