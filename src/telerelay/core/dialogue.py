"""Dialogue variants per chat and the transitions between them."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple


class DialogueKind(Enum):
    IDLE = "idle"
    PRIVATE = "private"
    GROUP = "group"


# (is_private, current, chat_known) -> next
TRANSITIONS: Dict[Tuple[bool, DialogueKind, bool], DialogueKind] = {
    (True, DialogueKind.IDLE, False): DialogueKind.PRIVATE,
    (True, DialogueKind.IDLE, True): DialogueKind.PRIVATE,
    (True, DialogueKind.PRIVATE, False): DialogueKind.PRIVATE,
    (True, DialogueKind.PRIVATE, True): DialogueKind.PRIVATE,
    (False, DialogueKind.IDLE, False): DialogueKind.IDLE,
    (False, DialogueKind.IDLE, True): DialogueKind.GROUP,
    (False, DialogueKind.GROUP, True): DialogueKind.GROUP,
    (False, DialogueKind.GROUP, False): DialogueKind.IDLE,
}


def next_dialogue(is_private: bool, current: DialogueKind, chat_known: bool) -> DialogueKind:
    """Return the dialogue variant that handles the next update of a chat."""

    try:
        return TRANSITIONS[(is_private, current, chat_known)]
    except KeyError:
        raise ValueError(
            f"No dialogue transition for private={is_private}, "
            f"current={current.value}, known={chat_known}"
        ) from None
