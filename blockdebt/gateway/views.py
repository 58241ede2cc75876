"""Buttons, views and modals of the loan gateway.

Loan buttons are dynamic items: their custom id ``blockdebt:<action>:<id>``
carries everything needed to handle a click, so they keep working after a
restart without re-registering a view per message.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

import discord

from blockdebt.common.categories import rules_for
from blockdebt.models.enums import LoanCategory, LoanStatus
from blockdebt.models.loans import LoanModel


logger = logging.getLogger(__name__)

CUSTOM_ID_PREFIX = "blockdebt"
PANEL_ID_PREFIX = "blockdebt-panel"

# action -> (label, style)
LOAN_ACTIONS: Dict[str, Tuple[str, discord.ButtonStyle]] = {
    "accept": ("Accept", discord.ButtonStyle.success),
    "decline": ("Decline", discord.ButtonStyle.danger),
    "pay": ("Pay", discord.ButtonStyle.primary),
    "markpaid": ("Mark as paid", discord.ButtonStyle.secondary),
    "confirmdone": ("Confirm paid", discord.ButtonStyle.success),
    "refresh": ("Refresh", discord.ButtonStyle.secondary),
    "close": ("Close", discord.ButtonStyle.danger),
    "confirmclose": ("Confirm close", discord.ButtonStyle.danger),
    "payconfirm": ("Confirm payment", discord.ButtonStyle.success),
    "payreject": ("Reject payment", discord.ButtonStyle.danger),
}


def build_custom_id(action: str, target_id: int) -> str:
    return "{0}:{1}:{2}".format(CUSTOM_ID_PREFIX, action, target_id)


def loan_actions_for(loan: LoanModel) -> List[str]:
    """Return the buttons a loan message shows in its current state."""
    if loan.status == LoanStatus.PENDING:
        actions = ["accept", "decline", "close"]
    elif loan.status == LoanStatus.ACTIVE:
        actions = ["refresh", "close"]
        if rules_for(loan.category).payable:
            actions.insert(0, "pay")
        if loan.completion_requested_at is None:
            actions.insert(-1, "markpaid")
        else:
            actions.insert(-1, "confirmdone")
    else:
        return []
    if loan.close_requested_by is not None:
        actions.append("confirmclose")
    return actions


class LoanActionButton(
    discord.ui.DynamicItem[discord.ui.Button],
    template=r"blockdebt:(?P<action>[a-z]+):(?P<id>[0-9]+)",
):
    """A loan or payment button that survives restarts."""

    def __init__(self, action: str, target_id: int) -> None:
        label, style = LOAN_ACTIONS[action]
        super().__init__(
            discord.ui.Button(
                label=label,
                style=style,
                custom_id=build_custom_id(action, target_id),
            )
        )
        self.action = action
        self.target_id = target_id

    @classmethod
    async def from_custom_id(
        cls,
        interaction: discord.Interaction,
        item: discord.ui.Button,
        match: re.Match,
    ) -> "LoanActionButton":
        action = match["action"]
        if action not in LOAN_ACTIONS:
            raise ValueError("Unknown loan action: {0}".format(action))
        return cls(action, int(match["id"]))

    async def callback(self, interaction: discord.Interaction) -> None:
        await interaction.client.handle_action(interaction, self.action, self.target_id)


def build_loan_view(loan: LoanModel) -> Optional[discord.ui.View]:
    """Build the action buttons of a loan, or None for terminal loans."""
    actions = loan_actions_for(loan)
    if not actions:
        return None
    view = discord.ui.View(timeout=None)
    for action in actions:
        view.add_item(LoanActionButton(action, loan.id))
    return view


def build_payment_view(payment_id: int) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(LoanActionButton("payconfirm", payment_id))
    view.add_item(LoanActionButton("payreject", payment_id))
    return view


class CreateLoanModal(discord.ui.Modal):
    """Collect the fields of a new loan for one category."""

    def __init__(self, category: LoanCategory) -> None:
        rules = rules_for(category)
        super().__init__(title="New {0} loan".format(rules.label))
        self.category = category
        self.inputs: Dict[str, discord.ui.TextInput] = {}

        for field in rules.creation_fields:
            self._add(
                field.key,
                field.label,
                field.placeholder,
                required=field.required,
                style=discord.TextStyle.paragraph if field.paragraph else discord.TextStyle.short,
                max_length=field.max_length,
            )
        self._add("debtor", "Debtor", "@mention or user id", required=False)

    def _add(
        self,
        key: str,
        label: str,
        placeholder: str,
        required: bool = True,
        style: discord.TextStyle = discord.TextStyle.short,
        max_length: int = 100,
    ) -> None:
        text_input = discord.ui.TextInput(
            label=label,
            placeholder=placeholder,
            required=required,
            style=style,
            max_length=max_length,
        )
        self.inputs[key] = text_input
        self.add_item(text_input)

    def raw_fields(self) -> Dict[str, Optional[str]]:
        return {key: text_input.value for key, text_input in self.inputs.items() if key != "debtor"}

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await interaction.client.open_loan(
            interaction,
            self.category,
            self.raw_fields(),
            self.inputs["debtor"].value,
        )

    async def on_error(self, interaction: discord.Interaction, error: Exception) -> None:
        logger.exception("Create loan modal failed category=%s", self.category.value, exc_info=error)
        await interaction.client.reply_error(interaction, "Something went wrong while opening the loan.")


class PaymentModal(discord.ui.Modal, title="Propose a payment"):
    """Ask the debtor how much they are paying."""

    amount = discord.ui.TextInput(label="Amount", placeholder="e.g. 500k, 2 stack + 10, 3", max_length=100)

    def __init__(self, loan_id: int) -> None:
        super().__init__()
        self.loan_id = loan_id

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await interaction.client.propose_payment(interaction, self.loan_id, self.amount.value)

    async def on_error(self, interaction: discord.Interaction, error: Exception) -> None:
        logger.exception("Payment modal failed loan_id=%s", self.loan_id, exc_info=error)
        await interaction.client.reply_error(interaction, "Something went wrong while recording the payment.")


class LoanPanelView(discord.ui.View):
    """Persistent category picker posted in the loans channel."""

    def __init__(self) -> None:
        super().__init__(timeout=None)
        for category in LoanCategory:
            button = discord.ui.Button(
                label=rules_for(category).label,
                style=discord.ButtonStyle.primary,
                custom_id="{0}:{1}".format(PANEL_ID_PREFIX, category.value.lower()),
            )
            button.callback = self._open_modal(category)
            self.add_item(button)

    @staticmethod
    def _open_modal(category: LoanCategory):
        async def callback(interaction: discord.Interaction) -> None:
            await interaction.response.send_modal(CreateLoanModal(category))

        return callback
