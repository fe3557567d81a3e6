from __future__ import annotations

import html
import logging
from typing import Any, Dict, List, Protocol

import httpx
from aiogram import Bot

from .config import Settings
from .polls.schema import Poll, Response


logger = logging.getLogger(__name__)

ANSWER_LABELS = {"yes": "Yes ✓", "ifneeded": "If needed ~", "no": "No ✗"}


class Channel(Protocol):
    async def send(self, *, subject: str, text: str, html_body: str) -> None: ...


def _action(is_update: bool) -> str:
    return "updated their answer" if is_update else "answered"


def render_text(poll: Poll, response: Response, is_update: bool, poll_url: str) -> str:
    lines = [f"{response.name} {_action(is_update)} — {poll.title}", ""]
    if response.upfront_instruments:
        lines.append("Instruments: " + ", ".join(response.upfront_instruments))
    for d in poll.dates:
        answer = response.answers.get(d, "no")
        chosen = response.instruments_on(d)
        extra = f" ({', '.join(chosen)})" if chosen else ""
        lines.append(f"{d}: {ANSWER_LABELS.get(answer, answer)}{extra}")
    lines.extend(["", poll_url])
    return "\n".join(lines)


def render_html(poll: Poll, response: Response, is_update: bool, poll_url: str) -> str:
    rows = []
    for d in poll.dates:
        answer = response.answers.get(d, "no")
        chosen = response.instruments_on(d)
        extra = f" ({html.escape(', '.join(chosen))})" if chosen else ""
        rows.append(
            f"<tr><td style='padding:8px 12px'>{d}</td>"
            f"<td style='padding:8px 12px'>{ANSWER_LABELS.get(answer, answer)}{extra}</td></tr>"
        )
    instruments = ""
    if response.upfront_instruments:
        instruments = f"<p>Instruments: {html.escape(', '.join(response.upfront_instruments))}</p>"
    return f"""
    <div style='font-family:sans-serif;max-width:600px'>
      <h2>{html.escape(poll.title)}</h2>
      <p>{html.escape(response.name)} {_action(is_update)}</p>
      {instruments}
      <table style='width:100%;border-collapse:collapse'>
        <thead><tr><th style='text-align:left'>Date</th><th style='text-align:left'>Availability</th></tr></thead>
        <tbody>{''.join(rows)}</tbody>
      </table>
      <p><a href='{html.escape(poll_url)}'>Open the poll</a></p>
    </div>
    """


class ResendEmailChannel:
    """E-mail through the Resend HTTP API.

    Matches POST https://api.resend.com/emails
    Body: {"from":"...","to":["..."],"subject":"...","html":"..."}
    """

    def __init__(self, api_key: str, to: str, sender: str, base_url: str = "https://api.resend.com") -> None:
        self.api_key = api_key
        self.to = to
        self.sender = sender
        self.base_url = base_url.rstrip("/")

    async def send(self, *, subject: str, text: str, html_body: str) -> None:
        payload: Dict[str, Any] = {
            "from": self.sender,
            "to": [self.to],
            "subject": subject,
            "html": html_body,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(f"{self.base_url}/emails", json=payload, headers=headers)
            resp.raise_for_status()


class TelegramChannel:
    def __init__(self, bot_token: str, chat_id: str) -> None:
        self.bot_token = bot_token
        self.chat_id = chat_id

    async def send(self, *, subject: str, text: str, html_body: str) -> None:
        bot = Bot(token=self.bot_token)
        try:
            await bot.send_message(chat_id=self.chat_id, text=text)
        finally:
            await bot.session.close()


class ResponseNotifier:
    """Tells the organizer about new and updated responses.

    Delivery is best effort: every channel failure is logged and dropped.
    """

    def __init__(self, channels: List[Channel], public_base_url: str = "") -> None:
        self.channels = channels
        self.public_base_url = public_base_url.rstrip("/")

    async def notify_response(self, poll: Poll, response: Response, is_update: bool) -> None:
        if not self.channels:
            return
        poll_url = f"{self.public_base_url}/poll/{poll.id}?admin=true"
        subject = f"{response.name} {_action(is_update)} — {poll.title}"
        text = render_text(poll, response, is_update, poll_url)
        html_body = render_html(poll, response, is_update, poll_url)
        for channel in self.channels:
            try:
                await channel.send(subject=subject, text=text, html_body=html_body)
            except Exception:  # noqa: BLE001
                logger.exception("Notification via %s failed for poll %s", type(channel).__name__, poll.id)


def build_notifier(settings: Settings) -> ResponseNotifier:
    channels: List[Channel] = []
    if settings.resend_api_key and settings.notify_email:
        channels.append(ResendEmailChannel(settings.resend_api_key, settings.notify_email, settings.notify_from))
    if settings.telegram_bot_token and settings.telegram_chat_id:
        channels.append(TelegramChannel(settings.telegram_bot_token, settings.telegram_chat_id))
    return ResponseNotifier(channels, public_base_url=settings.public_base_url)
