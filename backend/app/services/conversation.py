"""
Conversation reconciler — groups a flat message list into response carousels.

A group is one user turn plus every assistant response ever generated for
it. Regenerating resends the user turn's parts verbatim; the resent turn has
the same derived key as the first one, so it folds back into the existing
group as one more carousel slide instead of opening a new group.

Pure functions over the message list, plus a small state holder (Carousel)
that remembers which slide each group shows between reconciliations.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from core.messages import Message, Part, prompt_key

logger = logging.getLogger("grokchat.conversation")


@dataclass
class Group:
    group_id: str
    user_message: Message
    assistant_messages: list[Message] = field(default_factory=list)
    active_index: int = 0

    @property
    def active_message(self) -> Message:
        return self.assistant_messages[self.active_index]

    def contains(self, message_id: str) -> bool:
        return any(m.id == message_id for m in self.assistant_messages)


def _clamp(index: int, size: int) -> int:
    return max(0, min(index, size - 1))


def reconcile(
    messages: Sequence[Message],
    active_indices: dict[str, int] | None = None,
) -> list[Group]:
    """Partition messages into groups; O(n) over the list."""
    active_indices = active_indices or {}
    groups: list[Group] = []
    claimed: set[int] = set()
    n = len(messages)

    for i, message in enumerate(messages):
        if i in claimed or message.role != "user":
            continue

        key = prompt_key(message)
        assistants: list[Message] = []
        j = i + 1

        # Responses directly after the user turn
        while j < n and messages[j].role == "assistant":
            assistants.append(messages[j])
            claimed.add(j)
            j += 1

        # Regeneration replays: identical user turn + its responses
        while j < n and j not in claimed and messages[j].role == "user":
            if prompt_key(messages[j]) != key:
                break
            claimed.add(j)
            j += 1
            while j < n and messages[j].role == "assistant":
                assistants.append(messages[j])
                claimed.add(j)
                j += 1

        # A user turn still waiting for its first response yields no group
        if not assistants:
            continue

        claimed.add(i)
        stored = active_indices.get(message.id, len(assistants) - 1)
        groups.append(Group(
            group_id=message.id,
            user_message=message,
            assistant_messages=assistants,
            active_index=_clamp(stored, len(assistants)),
        ))

    return groups


def find_group(groups: Sequence[Group], assistant_id: str) -> Group | None:
    for group in groups:
        if group.contains(assistant_id):
            return group
    return None


def regenerate_parts(messages: Sequence[Message], assistant_id: str) -> list[Part] | None:
    """Parts to resend so the model produces another response for a group."""
    group = find_group(reconcile(messages), assistant_id)
    if group is None:
        return None
    return [p.model_copy() for p in group.user_message.parts]


class Carousel:
    """Per-group active slide, carried across reconciliations."""

    def __init__(self) -> None:
        self.active: dict[str, int] = {}
        self.groups: list[Group] = []
        self._last_seen_id = ""
        self._settled_id = ""

    def update(self, messages: Sequence[Message], status: str = "ready") -> list[Group]:
        """Reconcile and follow the newest response in the latest group."""
        groups = reconcile(messages, self.active)
        self.groups = groups

        if not messages or messages[-1].role != "assistant" or not groups:
            return groups

        last = messages[-1]
        is_new = last.id != self._last_seen_id
        is_complete = status == "ready" and last.id != self._settled_id
        if not (is_new or is_complete):
            return groups

        if is_new:
            self._last_seen_id = last.id
        if is_complete:
            self._settled_id = last.id

        group = groups[-1]
        if not group.contains(last.id):
            return groups

        newest = len(group.assistant_messages) - 1
        if group.active_index != newest:
            logger.debug("Group %s → slide %d", group.group_id, newest)
        group.active_index = newest
        self.active[group.group_id] = newest
        return groups

    def set_active_index(self, group_id: str, index: int) -> int:
        for group in self.groups:
            if group.group_id == group_id:
                group.active_index = _clamp(index, len(group.assistant_messages))
                self.active[group_id] = group.active_index
                return group.active_index
        raise KeyError(group_id)
