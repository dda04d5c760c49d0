"""
Inbound Events and Outbound Prompts

The transport adapter turns whatever its messaging platform delivers into
one of the event models below and renders the Prompt values the engine
returns. Button presses travel as short action strings; event_from_action()
maps them back to events.
"""

import re
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from cashflow_bot.models.conversation import OperationKind


class DatePresetChoice(str, Enum):
    TODAY = "today"
    YESTERDAY = "yesterday"
    CUSTOM = "custom"


class AttachmentChoice(str, Enum):
    ATTACH = "attach"
    SKIP = "skip"


# =============================================================================
# INBOUND EVENTS
# =============================================================================

class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Transport message id, used to drop redelivered messages
    message_id: Optional[int] = None


class Start(_Event):
    """User opened the bot (/start)."""
    pass


class OperationChosen(_Event):
    kind: OperationKind


class FreeTextInput(_Event):
    text: str


class SelectionChosen(_Event):
    index: int


class ImageSubmitted(_Event):
    data: bytes = Field(..., repr=False)


class Cancel(_Event):
    pass


class DatePreset(_Event):
    preset: DatePresetChoice


class AttachmentDecision(_Event):
    decision: AttachmentChoice


Event = Union[
    Start,
    OperationChosen,
    FreeTextInput,
    SelectionChosen,
    ImageSubmitted,
    Cancel,
    DatePreset,
    AttachmentDecision,
]


# =============================================================================
# OUTBOUND PROMPTS
# =============================================================================

ACTION_CANCEL = "cancel"
SELECT_PREFIX = "select_"
_SELECT_PATTERN = re.compile(r"^select_(\d+)$")


class PromptOption(BaseModel):
    """One button: what the user sees and what comes back when pressed."""
    model_config = ConfigDict(frozen=True)

    label: str
    action: str


class Prompt(BaseModel):
    """
    A message for the user.

    Either free text is expected, or the user picks one of `options`.
    Cancellable prompts carry a cancel button as their last option.
    """
    model_config = ConfigDict(frozen=True)

    text: str
    options: tuple[PromptOption, ...] = ()
    expects_free_text: bool = False

    @property
    def cancellable(self) -> bool:
        return any(option.action == ACTION_CANCEL for option in self.options)

    @property
    def selection_labels(self) -> list[str]:
        """Labels of the list items, in index order."""
        return [
            option.label
            for option in self.options
            if option.action.startswith(SELECT_PREFIX)
        ]


def event_from_action(action: str, message_id: Optional[int] = None) -> Event:
    """
    Map a button action string back to an event.

    Raises:
        ValueError: If the action is not one this package emits
    """
    if action == ACTION_CANCEL:
        return Cancel(message_id=message_id)

    match = _SELECT_PATTERN.match(action)
    if match:
        return SelectionChosen(index=int(match.group(1)), message_id=message_id)

    if action in OperationKind._value2member_map_:
        return OperationChosen(kind=OperationKind(action), message_id=message_id)

    if action.startswith("date_"):
        preset = action[len("date_"):]
        if preset in DatePresetChoice._value2member_map_:
            return DatePreset(preset=DatePresetChoice(preset), message_id=message_id)

    if action in AttachmentChoice._value2member_map_:
        return AttachmentDecision(decision=AttachmentChoice(action), message_id=message_id)

    raise ValueError(f"Unknown action: {action!r}")
