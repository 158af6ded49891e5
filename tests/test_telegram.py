"""Tests for alert formatting and the Telegram notifier."""
import pytest
from telegram.constants import ParseMode
from telegram.error import NetworkError

from dbc_alert.alerts.telegram import TelegramNotifier, format_alert
from dbc_alert.models import MatchResult


class FakeBot:
    def __init__(self):
        self.calls: list[dict] = []
        self.shut_down = False

    async def send_message(self, **kwargs):
        self.calls.append(kwargs)

    async def shutdown(self):
        self.shut_down = True


class FailingBot(FakeBot):
    async def send_message(self, **kwargs):
        self.calls.append(kwargs)
        raise NetworkError("connection reset")


def _result(**overrides) -> MatchResult:
    values = {"matches": ["Adraft"], "mint": "Adraft", "pool": "Pool1"}
    values.update(overrides)
    return MatchResult(**values)


def test_format_alert_contains_fields():
    text = format_alert(_result(), "5sig", ["draft"])
    assert "<code>Adraft</code>" in text
    assert "<code>Pool1</code>" in text
    assert "<code>5sig</code>" in text
    assert "<b>Suffixes:</b> <code>draft</code>" in text
    assert 'href="https://solscan.io/tx/5sig"' in text


def test_format_alert_escapes_markup():
    text = format_alert(
        _result(matches=["<b>draft"], mint="<b>draft", pool="a&b"),
        '"><script>',
        ["draft"],
    )
    assert "<script>" not in text
    assert "&lt;b&gt;draft" in text
    assert "a&amp;b" in text
    assert "&quot;&gt;&lt;script&gt;" in text


def test_format_alert_without_signature_has_no_link():
    text = format_alert(_result(), "", ["draft"])
    assert "solscan" not in text
    assert "<b>Tx:</b> <code>-</code>" in text


@pytest.mark.asyncio
async def test_send_posts_html_to_chat():
    bot = FakeBot()
    notifier = TelegramNotifier("token", "-100123", bot=bot)

    assert await notifier.send("<b>hi</b>") is True

    assert len(bot.calls) == 1
    call = bot.calls[0]
    assert call["chat_id"] == "-100123"
    assert call["text"] == "<b>hi</b>"
    assert call["parse_mode"] == ParseMode.HTML


@pytest.mark.asyncio
async def test_send_swallows_errors_without_retry():
    bot = FailingBot()
    notifier = TelegramNotifier("token", "1", bot=bot)

    assert await notifier.send("hello") is False
    assert len(bot.calls) == 1


@pytest.mark.asyncio
async def test_close_shuts_down_bot():
    bot = FakeBot()
    notifier = TelegramNotifier("token", "1", bot=bot)
    await notifier.close()
    assert bot.shut_down
