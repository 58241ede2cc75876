"""Tests for gateway helpers that do not need a live Discord connection."""

from datetime import datetime, timezone
import unittest
from unittest import mock

from blockdebt.common.numeric import preview_magnitude
from blockdebt.core.clock import ManualClock
from blockdebt.gateway.client import BlockDebtBot
from blockdebt.gateway.embeds import (
    STATUS_COLORS,
    build_loan_embed,
    build_panel_embed,
    build_payment_embed,
    build_preview_embed,
)
from blockdebt.gateway.mentions import mention, resolve_debtor_reference
from blockdebt.gateway.views import CreateLoanModal, build_custom_id, loan_actions_for
from blockdebt.models.base import UNKNOWN_ACTOR
from blockdebt.models.enums import LoanCategory, LoanStatus
from blockdebt.models.loans import LoanModel
from blockdebt.models.payments import PaymentModel
from blockdebt.repositories.memory_store import InMemoryLoanStore
from blockdebt.services.accrual import AccrualEngine
from blockdebt.services.ledger import PaymentLedger
from blockdebt.services.lifecycle import LoanLifecycleService


ACCEPTED = datetime(2026, 7, 1, tzinfo=timezone.utc)


def _loan(**overrides) -> LoanModel:
    payload = {
        "id": 12,
        "category": LoanCategory.MONEY,
        "creditor_id": "111111111111",
        "debtor_id": "222222222222",
        "original_amount": 1_500_000.0,
        "current_amount": 1_545_000.0,
    }
    payload.update(overrides)
    return LoanModel(**payload)


class MentionTests(unittest.TestCase):
    """Debtor references typed into the creation modal."""

    def test_resolve_forms(self) -> None:
        """Accept mentions and raw user ids."""
        self.assertEqual(resolve_debtor_reference("<@222222222222>"), 222222222222)
        self.assertEqual(resolve_debtor_reference("<@!222222222222>"), 222222222222)
        self.assertEqual(resolve_debtor_reference(" 222222222222 "), 222222222222)

    def test_unresolvable(self) -> None:
        """Return None for anything else."""
        for raw in (None, "", "someone", "@someone", "<@abc>", "12"):
            with self.subTest(raw=raw):
                self.assertIsNone(resolve_debtor_reference(raw))

    def test_mention(self) -> None:
        """Mention known members and fall back for unknown ones."""
        self.assertEqual(mention("222222222222"), "<@222222222222>")
        self.assertEqual(mention(UNKNOWN_ACTOR, "someone"), "someone")
        self.assertEqual(mention(UNKNOWN_ACTOR), UNKNOWN_ACTOR)


class LoanButtonTests(unittest.TestCase):
    """Which buttons a loan message shows."""

    def test_custom_id(self) -> None:
        """Encode the action and the target id."""
        self.assertEqual(build_custom_id("accept", 12), "blockdebt:accept:12")

    def test_pending(self) -> None:
        """Offer accept, decline and close on pending loans."""
        self.assertEqual(loan_actions_for(_loan()), ["accept", "decline", "close"])

    def test_active(self) -> None:
        """Offer payment and settlement buttons on active loans."""
        active = _loan(status=LoanStatus.ACTIVE, accepted_at=ACCEPTED)
        self.assertEqual(loan_actions_for(active), ["pay", "refresh", "markpaid", "close"])

        awaiting = active.with_changes({"completion_requested_at": ACCEPTED, "close_requested_by": "111111111111"})
        self.assertEqual(loan_actions_for(awaiting), ["pay", "refresh", "confirmdone", "close", "confirmclose"])

    def test_info_loans_cannot_be_paid(self) -> None:
        """Hide the Pay button on Info loans."""
        info = _loan(
            category=LoanCategory.INFO,
            original_amount=0.0,
            current_amount=0.0,
            status=LoanStatus.ACTIVE,
            accepted_at=ACCEPTED,
        )
        self.assertNotIn("pay", loan_actions_for(info))

    def test_terminal_loans_have_no_buttons(self) -> None:
        """Drop every button once a loan ends."""
        for status in (LoanStatus.DECLINED, LoanStatus.COMPLETED, LoanStatus.CLOSED):
            with self.subTest(status=status):
                self.assertEqual(loan_actions_for(_loan(status=status)), [])


class EmbedTests(unittest.TestCase):
    """Rendered loan embeds."""

    def test_loan_embed(self) -> None:
        """Render parties, status and balances."""
        embed = build_loan_embed(_loan())
        fields = {field.name: field.value for field in embed.fields}
        self.assertEqual(embed.title, "Loan #12 · Money")
        self.assertEqual(embed.color, STATUS_COLORS[LoanStatus.PENDING])
        self.assertEqual(fields["Creditor"], "<@111111111111>")
        self.assertEqual(fields["Outstanding"], "1.55M")
        self.assertEqual(fields["Original"], "1.5M")

    def test_info_embed_shows_notes(self) -> None:
        """Show notes instead of balances for Info loans."""
        embed = build_loan_embed(
            _loan(category=LoanCategory.INFO, original_amount=0.0, current_amount=0.0, notes="base coords")
        )
        self.assertEqual(embed.description, "base coords")
        self.assertNotIn("Outstanding", [field.name for field in embed.fields])

    def test_payment_embed(self) -> None:
        """Render a proposed payment."""
        payment = PaymentModel(id=3, loan_id=12, payer_id="222222222222", amount=500_000.0)
        embed = build_payment_embed(_loan(), payment)
        fields = {field.name: field.value for field in embed.fields}
        self.assertEqual(fields["Amount"], "500K")
        self.assertEqual(fields["Status"], "PROPOSED")

    def test_panel_embed(self) -> None:
        """Title the category panel."""
        self.assertEqual(build_panel_embed().title, "BlockDebt loans")

    def test_preview_embed(self) -> None:
        """Flag a money amount that was rewritten to its canonical form."""
        embed = build_preview_embed(preview_magnitude("1500000"))
        fields = {field.name: field.value for field in embed.fields}
        self.assertEqual(fields["Typed"], "1500000")
        self.assertEqual(fields["Format"], "1.5m (1.5M)")
        self.assertEqual(embed.footer.text, "Input corrected automatically")

        self.assertEqual(build_preview_embed(preview_magnitude("1.5m")).footer.text, "Valid value")


class CreateLoanModalTests(unittest.IsolatedAsyncioTestCase):
    """Creation forms follow the category rules."""

    async def test_inputs_per_category(self) -> None:
        """Lay out each form from its category's creation fields."""
        expected = {
            LoanCategory.MONEY: ["amount", "debtor"],
            LoanCategory.ITEM: ["stacks", "extra", "debtor"],
            LoanCategory.KILL: ["amount", "debtor"],
            LoanCategory.INFO: ["notes", "debtor"],
        }
        for category, keys in expected.items():
            with self.subTest(category=category):
                modal = CreateLoanModal(category)
                self.assertEqual(list(modal.inputs), keys)
        self.assertFalse(CreateLoanModal(LoanCategory.ITEM).inputs["extra"].required)


def _interaction(user_id: int) -> mock.MagicMock:
    interaction = mock.MagicMock()
    interaction.user.id = user_id
    interaction.user.display_name = "member-{0}".format(user_id)
    interaction.guild_id = 42
    interaction.response.is_done.return_value = False
    interaction.response.send_message = mock.AsyncMock()
    interaction.response.defer = mock.AsyncMock()
    interaction.followup.send = mock.AsyncMock()
    return interaction


class BotHandlerTests(unittest.IsolatedAsyncioTestCase):
    """Interaction handlers driven without a gateway connection."""

    async def asyncSetUp(self) -> None:
        store = InMemoryLoanStore()
        self.clock = ManualClock(ACCEPTED)
        self.lifecycle = LoanLifecycleService(
            store,
            self.clock,
            AccrualEngine(store, self.clock),
            PaymentLedger(store, self.clock),
        )
        self.bot = mock.MagicMock()
        self.bot._lifecycle = self.lifecycle
        self.bot.refresh_loan_message = mock.AsyncMock()
        self.bot.reply_error = mock.AsyncMock()

    async def test_refresh_without_interest_notifies(self) -> None:
        """Tell the member privately when a refresh finds nothing to add."""
        loan_id = self.lifecycle.create(LoanCategory.MONEY, "111", "222", {"amount": "1m"}).loan.id
        self.lifecycle.accept(loan_id, "222")
        interaction = _interaction(111)

        await BlockDebtBot.handle_action(self.bot, interaction, "refresh", loan_id)

        interaction.response.send_message.assert_awaited_once_with("No new interest to apply.", ephemeral=True)
        self.bot.refresh_loan_message.assert_not_awaited()

    async def test_refresh_with_interest_updates_thread(self) -> None:
        """Re-render the loan thread when a refresh applies interest."""
        loan_id = self.lifecycle.create(LoanCategory.MONEY, "111", "222", {"amount": "1m"}).loan.id
        self.lifecycle.accept(loan_id, "222")
        self.clock.advance(days=1)
        interaction = _interaction(111)

        await BlockDebtBot.handle_action(self.bot, interaction, "refresh", loan_id)

        interaction.response.defer.assert_awaited_once()
        self.bot.refresh_loan_message.assert_awaited_once()

    async def test_open_money_loan_shows_preview(self) -> None:
        """Attach the amount preview to the reply for a new money loan."""
        self.bot._resolve_debtor = mock.AsyncMock(return_value=None)
        thread = mock.MagicMock()
        thread.mention = "<#900>"
        self.bot._open_thread = mock.AsyncMock(return_value=thread)
        interaction = _interaction(111)

        await BlockDebtBot.open_loan(self.bot, interaction, LoanCategory.MONEY, {"amount": "1000k"}, None)

        interaction.followup.send.assert_awaited_once()
        kwargs = interaction.followup.send.await_args.kwargs
        self.assertTrue(kwargs["ephemeral"])
        self.assertEqual(kwargs["embed"].footer.text, "Input corrected automatically")

    async def test_open_kill_loan_has_no_preview(self) -> None:
        """Reply without a preview for categories that have none."""
        self.bot._resolve_debtor = mock.AsyncMock(return_value=None)
        thread = mock.MagicMock()
        thread.mention = "<#901>"
        self.bot._open_thread = mock.AsyncMock(return_value=thread)
        interaction = _interaction(111)

        await BlockDebtBot.open_loan(self.bot, interaction, LoanCategory.KILL, {"amount": "3"}, None)

        self.assertNotIn("embed", interaction.followup.send.await_args.kwargs)

    async def test_open_loan_reports_parse_errors(self) -> None:
        """Send parse failures back privately without opening a thread."""
        self.bot._resolve_debtor = mock.AsyncMock(return_value=None)
        self.bot._open_thread = mock.AsyncMock()
        interaction = _interaction(111)

        await BlockDebtBot.open_loan(self.bot, interaction, LoanCategory.MONEY, {"amount": "1,5m"}, None)

        self.bot.reply_error.assert_awaited_once()
        self.bot._open_thread.assert_not_awaited()
