"""Telegram notification handler."""
import html
from typing import Optional, Sequence

import structlog
from telegram import Bot, LinkPreviewOptions
from telegram.constants import ParseMode
from telegram.request import HTTPXRequest

from dbc_alert.errors import NotificationError
from dbc_alert.models import MatchResult

logger = structlog.get_logger()

SOLSCAN_TX_URL = "https://solscan.io/tx/"


def format_alert(result: MatchResult, signature: str, suffixes: Sequence[str]) -> str:
    """Render a match as Telegram HTML. All data fields are escaped."""
    mint = html.escape(result.mint or "-")
    pool = html.escape(result.pool or "-")
    tx = html.escape(signature or "-")
    matched = html.escape(",".join(result.matches))
    matched_suffixes = html.escape(",".join(suffixes) or "-")

    message = (
        f"🔥 <b>New DBC token</b>\n\n"
        f"<b>Mint:</b> <code>{mint}</code>\n"
        f"<b>Pool:</b> <code>{pool}</code>\n"
        f"<b>Tx:</b> <code>{tx}</code>\n"
        f"<b>Matched:</b> <code>{matched}</code>\n"
        f"<b>Suffixes:</b> <code>{matched_suffixes}</code>"
    )

    if signature:
        url = html.escape(SOLSCAN_TX_URL + signature, quote=True)
        message += f"\n\n🔗 <a href=\"{url}\">View on Solscan</a>"

    return message


class TelegramNotifier:
    """Sends alert messages to a single Telegram chat.

    One attempt per message, no retries. Failures are logged and reported
    through the return value, never raised.
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        timeout: float = 10.0,
        bot: Optional[Bot] = None,
    ):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout
        self._bot = bot

    @property
    def bot(self) -> Bot:
        if self._bot is None:
            request = HTTPXRequest(
                connect_timeout=self.timeout,
                read_timeout=self.timeout,
                write_timeout=self.timeout,
                pool_timeout=self.timeout,
            )
            self._bot = Bot(token=self.bot_token, request=request)
        return self._bot

    async def send(self, text: str) -> bool:
        """Deliver one message. Returns True if Telegram accepted it."""
        try:
            await self.bot.send_message(
                chat_id=self.chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
                link_preview_options=LinkPreviewOptions(is_disabled=True),
            )
        except Exception as e:
            error = NotificationError(f"Telegram send failed: {e}")
            logger.error("telegram_send_failed", chat_id=self.chat_id, error=str(error))
            return False
        return True

    async def close(self):
        """Release the HTTP client if a bot was created."""
        if self._bot is not None:
            try:
                await self._bot.shutdown()
            except Exception as e:
                logger.warning("telegram_shutdown_failed", error=str(e))
