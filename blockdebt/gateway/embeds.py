"""Embed rendering for loan messages."""

from datetime import datetime, timezone
from typing import Dict

import discord

from blockdebt.common.categories import rules_for
from blockdebt.common.numeric import MagnitudePreview
from blockdebt.models.enums import LoanStatus
from blockdebt.models.loans import LoanModel
from blockdebt.models.payments import PaymentModel
from blockdebt.services.lifecycle import build_display

from .mentions import mention


STATUS_COLORS: Dict[LoanStatus, discord.Color] = {
    LoanStatus.PENDING: discord.Color.gold(),
    LoanStatus.ACTIVE: discord.Color.blue(),
    LoanStatus.DECLINED: discord.Color.dark_grey(),
    LoanStatus.COMPLETED: discord.Color.green(),
    LoanStatus.CLOSED: discord.Color.red(),
}

PANEL_TITLE = "BlockDebt loans"


def build_panel_embed() -> discord.Embed:
    """Embed posted above the category buttons in the loans channel."""
    embed = discord.Embed(
        title=PANEL_TITLE,
        description=(
            "Pick a category below to open a loan.\n\n"
            "Money amounts accept k, m, b and t suffixes (e.g. `1.5m`).\n"
            "Items are counted in stacks of 64.\n"
            "Money, Item and Kill loans grow by 3% per day once accepted."
        ),
        color=discord.Color.blurple(),
        timestamp=datetime.now(timezone.utc),
    )
    embed.set_footer(text="Both parties confirm every change.")
    return embed


def build_loan_embed(loan: LoanModel) -> discord.Embed:
    """Render a loan as the thread's status embed."""
    display = build_display(loan)
    embed = discord.Embed(
        title="Loan #{0} · {1}".format(loan.id, display.category),
        color=STATUS_COLORS.get(loan.status, discord.Color.default()),
        timestamp=loan.updated_at,
    )
    embed.add_field(name="Creditor", value=mention(loan.creditor_id, display.creditor), inline=True)
    embed.add_field(name="Debtor", value=mention(loan.debtor_id, display.debtor), inline=True)
    embed.add_field(name="Status", value=display.status, inline=True)

    if rules_for(loan.category).has_amount:
        embed.add_field(name="Original", value=display.original, inline=True)
        embed.add_field(name="Outstanding", value=display.current, inline=True)
    else:
        embed.description = display.notes

    if display.completion_requested:
        embed.add_field(name="Awaiting", value="Creditor must confirm the loan is settled.", inline=False)
    if display.close_requested_by:
        embed.add_field(
            name="Awaiting",
            value="{0} must confirm closing this loan.".format(mention(display.close_requested_by)),
            inline=False,
        )
    embed.set_footer(text="Loan #{0}".format(loan.id))
    return embed


def build_payment_embed(loan: LoanModel, payment: PaymentModel) -> discord.Embed:
    """Render a proposed payment for the creditor to confirm or reject."""
    display = build_display(loan)
    embed = discord.Embed(
        title="Payment #{0} on loan #{1}".format(payment.id, loan.id),
        color=discord.Color.orange(),
        timestamp=payment.recorded_at,
    )
    amount = rules_for(loan.category).format_amount(payment.amount)
    embed.add_field(name="Amount", value=amount, inline=True)
    embed.add_field(name="Outstanding", value=display.current, inline=True)
    embed.add_field(name="Status", value=payment.status.value, inline=True)
    return embed


def build_preview_embed(preview: MagnitudePreview) -> discord.Embed:
    """Show how a typed Money amount was read and stored."""
    embed = discord.Embed(title="Money loan preview", color=discord.Color.teal())
    embed.add_field(name="Typed", value=preview.raw, inline=True)
    embed.add_field(name="Value", value="{0:,.2f}".format(preview.value), inline=True)
    embed.add_field(name="Format", value="{0} ({1})".format(preview.canonical, preview.display), inline=True)
    embed.set_footer(text="Input corrected automatically" if preview.corrected else "Valid value")
    return embed
