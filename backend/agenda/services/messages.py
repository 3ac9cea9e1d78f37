"""Customer-facing message texts (pt-PT)."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from agenda.scheduling.state_machine import AppointmentStatus
from agenda.scheduling.zoned_time import to_local


def format_when(instant: datetime, zone: str) -> tuple[str, str]:
    day, wall = to_local(instant, zone)
    return day.strftime("%d/%m/%Y"), wall.strftime("%H:%M")


def _greeting(name: Optional[str]) -> str:
    return f"Olá {name}!" if name else "Olá!"


def confirmation_request(name: Optional[str], business: str, instant: datetime, zone: str) -> str:
    date_txt, time_txt = format_when(instant, zone)
    return (
        f"{_greeting(name)} A sua marcação em {business} ficou registada para "
        f"{date_txt} às {time_txt}.\n\nResponda SIM para confirmar ou NÃO para cancelar."
    )


def reminder_24h(name: Optional[str], instant: datetime, zone: str) -> str:
    date_txt, time_txt = format_when(instant, zone)
    name_part = f" {name}" if name else ""
    return (
        "LEMBRETE ⏰\n\n"
        f"Olá{name_part}, só para relembrar o seu horário:\n"
        f"🗓️ {date_txt} {time_txt}\n\n"
        "Responda SIM ou NÃO."
    )


def cancelled_by_operator(
    name: Optional[str], instant: datetime, zone: str, booking_url: Optional[str] = None
) -> str:
    date_txt, time_txt = format_when(instant, zone)
    link = f" ou use o link: {booking_url}" if booking_url else ""
    return (
        f"{_greeting(name)} 😊\n\n"
        f"A sua marcação de {date_txt} às {time_txt} foi cancelada pelo estabelecimento.\n\n"
        f"Para reagendar, responda por aqui{link}.\n\nObrigado!"
    )


def thank_you(name: Optional[str]) -> str:
    name_part = f" {name}" if name else ""
    return f"Obrigado{name_part}! 🙏 Se precisar de algo, é só responder por aqui."


def rebook(name: Optional[str]) -> str:
    name_part = f" {name}" if name else ""
    return f"Olá{name_part}! 😊 Quer marcar novamente para esta semana?"


CONFIRMED_REPLY = "✅ Perfeito! A sua marcação foi confirmada. Obrigado."
CANCELLED_REPLY = "❌ Ok! A sua marcação foi cancelada. Se quiser remarcar, é só responder por aqui."
CLARIFY_PROMPT = "Não entendi. Responda SIM para confirmar ou NÃO para cancelar a sua marcação."
NO_APPOINTMENT_REPLY = "Não encontrámos nenhuma marcação ativa para este número."

_STATUS_REPLIES = {
    AppointmentStatus.BOOKED: "A sua marcação está registada e aguarda confirmação.",
    AppointmentStatus.CONFIRMED: "A sua marcação já está confirmada. Obrigado!",
    AppointmentStatus.CANCELLED: "A sua marcação já se encontra cancelada.",
    AppointmentStatus.COMPLETED: "Esta marcação já foi concluída.",
    AppointmentStatus.NO_SHOW: "Esta marcação já foi encerrada.",
}


def status_reply(status: AppointmentStatus) -> str:
    return _STATUS_REPLIES[AppointmentStatus(status)]
