"""Tests for amount formatting and Discord notifications"""
from datetime import datetime
from unittest.mock import MagicMock

import pytest
import requests

from account_monitor.models.chain import Account, Balance, BalanceChange, Network, Token, TokenKind
from account_monitor.models.summary import AccountSummary, DailySummary, TokenBalance, TokenTotal
from account_monitor.services.notifier import DiscordNotifier, format_balance_change, format_daily_summary
from account_monitor.units import format_address, format_token_amount, human_parts, meets_threshold
from chain_data import ALICE_SS58

WEBHOOK = "https://discord.test/api/webhooks/1/token"


class TestUnits:

    def test_human_parts(self):
        assert human_parts(1_000_001_000_000, 10) == (100, 1)
        assert human_parts(-25 * 10 ** 9, 10) == (2, 5000)
        assert human_parts(123, 0) == (123, 0)

    def test_fraction_is_truncated(self):
        assert human_parts(19_999_999, 10) == (0, 19)

    @pytest.mark.parametrize("amount, decimals, threshold, expected", [
        (1_000_000, 10, 0.0001, True),
        (-1_000_000, 10, 0.0001, True),
        (999_999, 10, 0.0001, False),
        (10 ** 6, 6, 1, True),
        (999_999, 6, 1, False),
        (1, 10, 0, True),
        (10 ** 30, 18, 1_000_000_000, True),
    ])
    def test_meets_threshold(self, amount, decimals, threshold, expected):
        assert meets_threshold(amount, decimals, threshold) is expected

    def test_format_token_amount(self):
        assert format_token_amount(1_000_001_000_000, 10, "DOT") == "100.0001 DOT"
        assert format_token_amount(-1_000_000, 10, "DOT", signed=True) == "-0.0001 DOT"
        assert format_token_amount(1_000_000, 10, signed=True) == "+0.0001"
        assert format_token_amount(0, 10, signed=True) == "0.0000"
        assert format_token_amount(2_500_000, 6) == "2.5000"

    def test_format_address(self):
        assert format_address(ALICE_SS58) == "5Grwva...GKutQY"
        assert format_address("short") == "short"


@pytest.fixture
def change():
    before = Balance.native(10 ** 12, 0, 0)
    after = Balance.native(1_000_001_000_000, 0, 0)
    return BalanceChange.between(1, 1, 1, before, after)


@pytest.fixture
def models():
    account = Account(id=1, address=ALICE_SS58, name="Treasury")
    network = Network(id=1, name="polkadot", symbol="DOT")
    token = Token(id=1, kind=TokenKind.NATIVE, symbol="DOT", decimals=10)
    return account, network, token


@pytest.fixture
def summary():
    treasury = AccountSummary(name="Treasury", address=ALICE_SS58)
    treasury.add(TokenBalance("polkadot", "DOT", 10, 1_000_001_000_000, 1_000_000))
    treasury.add(TokenBalance("asset-hub", "USDt", 6, 2_500_000, 0, TokenKind.ASSET))
    treasury.add(TokenBalance("kusama", "KSM", 12, 0, 0))
    return DailySummary(
        total_accounts=1,
        active_networks=2,
        totals_by_token={
            "DOT": TokenTotal("DOT", 1_000_001_000_000, 1_000_000, 10),
            "USDt": TokenTotal("USDt", 2_500_000, 0, 6),
            "KSM": TokenTotal("KSM", 0, 0, 12),
        },
        token_decimals={"DOT": 10, "USDt": 6, "KSM": 12},
        account_summaries=[treasury]
    )


class TestFormatting:

    def test_balance_change(self, models, change):
        message = format_balance_change(*models, change)

        assert "📈 Balance Change Alert" in message
        assert "Network: polkadot | Token: DOT" in message
        assert "Change: +0.0001 DOT" in message
        assert "Before: 100.0000 DOT → After: 100.0001 DOT" in message
        assert format_address(ALICE_SS58) in message

    def test_decrease_uses_down_emoji(self, models):
        change = BalanceChange.between(1, 1, 1, Balance.native(10, 0, 0), Balance.zero())
        assert "📉" in format_balance_change(*models, change)

    def test_daily_summary(self, summary):
        message = format_daily_summary(summary, today=datetime(2024, 5, 1))

        assert message.startswith("**📊 Daily Portfolio Summary - 2024-05-01**")
        assert "Active Accounts: 1 | Active Networks: 2" in message
        assert "PORTFOLIO TOTALS BY TOKEN" in message
        assert "100.0001" in message
        assert "+0.0001" in message
        assert "2.5000" in message
        assert "KSM" not in message
        assert message.endswith("```")


class TestDiscordNotifier:

    def test_posts_webhook(self, models, change):
        session = MagicMock()
        notifier = DiscordNotifier(WEBHOOK, session=session)

        assert notifier.send_balance_change(*models, change)

        session.post.assert_called_once()
        args, kwargs = session.post.call_args
        assert args == (WEBHOOK,)
        assert "Balance Change Alert" in kwargs['json']['content']
        assert kwargs['timeout'] == 10

    def test_failure_is_logged_and_dropped(self, summary, caplog):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("connection refused")
        notifier = DiscordNotifier(WEBHOOK, session=session)

        assert notifier.send_daily_summary(summary) is False
        assert "Failed to send Discord webhook" in caplog.text

    def test_http_error_is_dropped(self, summary):
        session = MagicMock()
        session.post.return_value.raise_for_status.side_effect = requests.HTTPError("429 Too Many Requests")
        assert DiscordNotifier(WEBHOOK, session=session).send_daily_summary(summary) is False
