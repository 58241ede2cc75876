"""Discord client that drives loans from buttons and modals."""

import logging
from typing import Optional

import discord
from discord.ext import commands

from blockdebt.common.categories import rules_for
from blockdebt.core.config import AppSettings
from blockdebt.models.base import UNKNOWN_ACTOR
from blockdebt.models.enums import LoanCategory, LoanStatus
from blockdebt.models.exceptions import LoanError, ModelValidationError, ParseError
from blockdebt.models.loans import LoanModel
from blockdebt.services.accrual import AccrualResult
from blockdebt.services.lifecycle import LoanLifecycleService, TransitionResult

from .embeds import PANEL_TITLE, build_loan_embed, build_panel_embed, build_payment_embed, build_preview_embed
from .mentions import resolve_debtor_reference
from .views import LoanActionButton, LoanPanelView, PaymentModal, build_loan_view, build_payment_view


logger = logging.getLogger(__name__)

_CLOSING_STATUSES = frozenset({LoanStatus.DECLINED, LoanStatus.CLOSED})


class BlockDebtBot(commands.Bot):
    """Gateway between Discord members and the loan lifecycle."""

    def __init__(self, settings: AppSettings, lifecycle: LoanLifecycleService) -> None:
        intents = discord.Intents.default()
        intents.members = True
        super().__init__(command_prefix=commands.when_mentioned, intents=intents)
        self._settings = settings
        self._lifecycle = lifecycle
        self._panel_posted = False

    async def setup_hook(self) -> None:
        self.add_view(LoanPanelView())
        self.add_dynamic_items(LoanActionButton)

    async def on_ready(self) -> None:
        logger.info("Discord gateway connected as %s", self.user)
        if not self._panel_posted:
            await self._post_panel()

    async def _post_panel(self) -> None:
        """Post the category panel unless a recent one is already there."""
        channel_id = self._settings.loans_channel_id
        if channel_id is None:
            logger.warning("No loans channel configured. Skipping panel.")
            return
        channel = self.get_channel(channel_id)
        if not isinstance(channel, discord.TextChannel):
            logger.error("Loans channel not found or not a text channel: %s", channel_id)
            return

        try:
            async for message in channel.history(limit=20):
                if message.author == self.user and any(embed.title == PANEL_TITLE for embed in message.embeds):
                    logger.info("Existing loan panel found message_id=%s", message.id)
                    self._panel_posted = True
                    return
            await channel.send(embed=build_panel_embed(), view=LoanPanelView())
            self._panel_posted = True
            logger.info("Loan panel posted channel_id=%s", channel_id)
        except discord.HTTPException:
            logger.exception("Failed to post loan panel channel_id=%s", channel_id)

    # ------------------------------------------------------------------
    # Replies
    # ------------------------------------------------------------------

    async def reply_error(self, interaction: discord.Interaction, message: str) -> None:
        """Answer privately, whether or not the interaction was already acknowledged."""
        try:
            if interaction.response.is_done():
                await interaction.followup.send(message, ephemeral=True)
            else:
                await interaction.response.send_message(message, ephemeral=True)
        except discord.HTTPException:
            logger.exception("Failed to deliver error reply")

    # ------------------------------------------------------------------
    # Loan creation
    # ------------------------------------------------------------------

    async def _resolve_debtor(self, guild: Optional[discord.Guild], raw: Optional[str]) -> Optional[discord.Member]:
        member_id = resolve_debtor_reference(raw)
        if member_id is None or guild is None:
            return None
        member = guild.get_member(member_id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(member_id)
        except discord.HTTPException:
            logger.info("Debtor reference did not resolve guild_id=%s member_id=%s", guild.id, member_id)
            return None

    async def open_loan(
        self,
        interaction: discord.Interaction,
        category: LoanCategory,
        raw_fields: dict,
        debtor_reference: Optional[str],
    ) -> None:
        """Create a loan from a submitted modal and open its thread."""
        debtor = await self._resolve_debtor(interaction.guild, debtor_reference)
        try:
            result = self._lifecycle.create(
                category=category,
                creditor_id=str(interaction.user.id),
                debtor_id=str(debtor.id) if debtor is not None else UNKNOWN_ACTOR,
                raw_fields=raw_fields,
                creditor_name=interaction.user.display_name,
                debtor_name=debtor.display_name if debtor is not None else "",
                guild_id=str(interaction.guild_id) if interaction.guild_id else None,
            )
        except (ModelValidationError, LoanError) as exc:
            await self.reply_error(interaction, str(exc))
            return

        preview = rules_for(category).preview(raw_fields)
        await interaction.response.defer(ephemeral=True, thinking=True)
        thread = await self._open_thread(interaction, result.loan)
        if thread is None:
            await interaction.followup.send(
                "Loan #{0} was created, but its thread could not be opened.".format(result.loan.id),
                ephemeral=True,
            )
            return
        reply = {"content": "Loan #{0} created: {1}".format(result.loan.id, thread.mention), "ephemeral": True}
        if preview is not None:
            reply["embed"] = build_preview_embed(preview)
        await interaction.followup.send(**reply)

    async def _open_thread(self, interaction: discord.Interaction, loan: LoanModel) -> Optional[discord.Thread]:
        channel = interaction.channel
        if not isinstance(channel, discord.TextChannel):
            logger.warning("Cannot open loan thread outside a text channel loan_id=%s", loan.id)
            return None
        try:
            thread = await channel.create_thread(
                name="loan-{0}-{1}".format(loan.id, loan.category.value.lower()),
                type=discord.ChannelType.public_thread,
            )
            result = self._lifecycle.attach_thread(loan.id, str(thread.id))
            await thread.send(
                content=self._participants(result.loan),
                embed=build_loan_embed(result.loan),
                view=build_loan_view(result.loan),
            )
            logger.info("Loan thread opened loan_id=%s thread_id=%s", loan.id, thread.id)
            return thread
        except (discord.HTTPException, LoanError):
            logger.exception("Failed to open loan thread loan_id=%s", loan.id)
            return None

    @staticmethod
    def _participants(loan: LoanModel) -> str:
        mentions = ["<@{0}>".format(loan.creditor_id)]
        if loan.debtor_known:
            mentions.append("<@{0}>".format(loan.debtor_id))
        return " ".join(mentions)

    # ------------------------------------------------------------------
    # Button actions
    # ------------------------------------------------------------------

    async def handle_action(self, interaction: discord.Interaction, action: str, target_id: int) -> None:
        """Dispatch one loan or payment button click."""
        actor_id = str(interaction.user.id)
        if action == "pay":
            await interaction.response.send_modal(PaymentModal(target_id))
            return

        handlers = {
            "accept": self._lifecycle.accept,
            "decline": self._lifecycle.decline,
            "markpaid": self._lifecycle.mark_paid,
            "confirmdone": self._lifecycle.confirm_completion,
            "refresh": self._lifecycle.refresh,
            "close": self._lifecycle.request_close,
            "confirmclose": self._lifecycle.confirm_close,
            "payconfirm": self._lifecycle.confirm_payment,
            "payreject": self._lifecycle.reject_payment,
        }
        handler = handlers.get(action)
        if handler is None:
            await self.reply_error(interaction, "Unknown action.")
            return

        try:
            result = handler(target_id, actor_id)
        except (ParseError, LoanError) as exc:
            await self.reply_error(interaction, str(exc))
            return

        if action == "refresh" and result.accrual is None:
            await interaction.response.send_message("No new interest to apply.", ephemeral=True)
            return

        if result.payment is not None and action in {"payconfirm", "payreject"}:
            await self._update_payment_message(interaction, result)
        else:
            await interaction.response.defer()
        await self.refresh_loan_message(result.loan)

    async def propose_payment(self, interaction: discord.Interaction, loan_id: int, raw_amount: str) -> None:
        """Record a proposed payment and ask the creditor to confirm it."""
        try:
            result = self._lifecycle.propose_payment(loan_id, str(interaction.user.id), raw_amount)
        except (ParseError, LoanError) as exc:
            await self.reply_error(interaction, str(exc))
            return

        await interaction.response.send_message(
            content="<@{0}> please confirm this payment.".format(result.loan.creditor_id),
            embed=build_payment_embed(result.loan, result.payment),
            view=build_payment_view(result.payment.id),
        )
        if result.accrual is not None:
            await self.refresh_loan_message(result.loan)

    async def _update_payment_message(self, interaction: discord.Interaction, result: TransitionResult) -> None:
        await interaction.response.edit_message(
            embed=build_payment_embed(result.loan, result.payment),
            view=None,
        )
        if result.loan.status == LoanStatus.COMPLETED:
            await interaction.followup.send("Loan #{0} is fully paid.".format(result.loan.id))

    # ------------------------------------------------------------------
    # Thread upkeep
    # ------------------------------------------------------------------

    async def _fetch_thread(self, loan: LoanModel) -> Optional[discord.Thread]:
        if not loan.thread_ref:
            return None
        try:
            channel = self.get_channel(int(loan.thread_ref)) or await self.fetch_channel(int(loan.thread_ref))
        except (discord.HTTPException, ValueError):
            logger.warning("Loan thread unavailable loan_id=%s thread_ref=%s", loan.id, loan.thread_ref)
            return None
        return channel if isinstance(channel, discord.Thread) else None

    async def refresh_loan_message(self, loan: LoanModel) -> None:
        """Re-render the status message of a loan thread."""
        thread = await self._fetch_thread(loan)
        if thread is None:
            return
        try:
            async for message in thread.history(limit=50, oldest_first=True):
                if message.author == self.user and message.embeds:
                    await message.edit(embed=build_loan_embed(loan), view=build_loan_view(loan))
                    break
            if loan.status in _CLOSING_STATUSES:
                await thread.send("Loan #{0} is {1}.".format(loan.id, loan.status.value.lower()))
                await thread.edit(locked=True, archived=True)
                logger.info("Loan thread archived loan_id=%s", loan.id)
        except discord.HTTPException:
            logger.exception("Failed to refresh loan thread loan_id=%s", loan.id)

    async def on_accrued(self, loan: LoanModel, result: AccrualResult) -> None:
        """Sweeper callback: show the grown balance in the loan thread."""
        logger.debug("Refreshing loan thread after accrual loan_id=%s days=%d", loan.id, result.days)
        await self.refresh_loan_message(loan)
