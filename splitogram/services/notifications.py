import asyncio
import html
import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from splitogram.core.utils import format_amount
from splitogram.models.group_member import GroupMember
from splitogram.models.settlement import SettlementStatus
from splitogram.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotifyUser:
    telegram_id: int
    display_name: str


async def load_notify_users(db: AsyncSession, user_ids: List[int]) -> List[NotifyUser]:
    res = await db.execute(
        select(User.id, User.telegram_id, User.display_name).where(User.id.in_(user_ids))
    )
    by_id = {row.id: NotifyUser(row.telegram_id, row.display_name) for row in res}
    return [by_id[uid] for uid in user_ids if uid in by_id]


async def load_group_members(db: AsyncSession, group_id: int) -> List[NotifyUser]:
    res = await db.execute(
        select(User.telegram_id, User.display_name)
        .join(GroupMember, GroupMember.user_id == User.id)
        .where(GroupMember.group_id == group_id)
    )
    return [NotifyUser(row.telegram_id, row.display_name) for row in res]


class TelegramNotifier:
    """
    Best-effort Telegram messages.

    Meant to run as a background task: every failure is logged and dropped,
    nothing is ever raised back to the caller.
    """

    def __init__(
        self,
        bot_token: str,
        pages_url: Optional[str] = None,
        api_url: str = "https://api.telegram.org",
        timeout: float = 5.0,
        retry_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.bot_token = bot_token
        self.pages_url = pages_url
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.retry_delay = retry_delay
        self.transport = transport

    def _keyboard(self, label: str):
        if not self.pages_url:
            return None
        return {"inline_keyboard": [[{"text": label, "web_app": {"url": self.pages_url}}]]}

    async def _post(self, payload: dict) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            res = await client.post(f"{self.api_url}/bot{self.bot_token}/sendMessage", json=payload)
            res.raise_for_status()

    async def send_message(self, telegram_id: int, text: str, button: Optional[str] = None) -> bool:
        payload = {"chat_id": telegram_id, "text": text, "parse_mode": "HTML"}
        keyboard = self._keyboard(button) if button else None
        if keyboard:
            payload["reply_markup"] = keyboard

        # one attempt plus one retry
        try:
            await self._post(payload)
            return True
        except httpx.HTTPError as first_error:
            await asyncio.sleep(self.retry_delay)
            try:
                await self._post(payload)
                return True
            except httpx.HTTPError:
                logger.warning("Failed to notify user %s: %r", telegram_id, first_error)
                return False

    async def expense_created(
        self,
        description: str,
        amount: int,
        payer: NotifyUser,
        participants: List[NotifyUser],
        group_name: str,
    ) -> None:
        text = (
            f"<b>{html.escape(payer.display_name)}</b> added an expense in <b>{html.escape(group_name)}</b>\n"
            f"\"{html.escape(description)}\" - {format_amount(amount)}"
        )
        await asyncio.gather(*[
            self.send_message(p.telegram_id, text, "View Group")
            for p in participants
            if p.telegram_id != payer.telegram_id
        ])

    async def settlement_completed(
        self,
        amount: int,
        status: str,
        tx_hash: Optional[str],
        debtor: NotifyUser,
        creditor: NotifyUser,
        group_name: str,
    ) -> None:
        amount_str = format_amount(amount)
        method = "on-chain" if status == SettlementStatus.SETTLED_ONCHAIN.value else "externally"
        tx_info = f"\nTx: <code>{html.escape(tx_hash[:16])}...</code>" if tx_hash else ""
        group = html.escape(group_name)

        creditor_text = (
            f"<b>{html.escape(debtor.display_name)}</b> settled {amount_str} with you {method} in <b>{group}</b>{tx_info}"
        )
        debtor_text = (
            f"You settled {amount_str} with <b>{html.escape(creditor.display_name)}</b> {method} in <b>{group}</b>{tx_info}"
        )

        await asyncio.gather(
            self.send_message(creditor.telegram_id, creditor_text, "View Group"),
            self.send_message(debtor.telegram_id, debtor_text, "View Group"),
        )

    async def member_joined(
        self,
        new_member: NotifyUser,
        existing_members: List[NotifyUser],
        group_name: str,
    ) -> None:
        text = f"<b>{html.escape(new_member.display_name)}</b> joined <b>{html.escape(group_name)}</b>"
        await asyncio.gather(*[
            self.send_message(m.telegram_id, text, "Open Group")
            for m in existing_members
            if m.telegram_id != new_member.telegram_id
        ])
