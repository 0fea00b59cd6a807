"""Buyer/seller messaging rules.

Trades must close on the platform, so messages that try to hand over an email
address or phone number are refused before they are stored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

EMAIL_PATTERN = re.compile(r"[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}", re.IGNORECASE)
CONTACT_KEYWORDS = re.compile(r"\b(phone|call\s+me|email|e-mail)\b", re.IGNORECASE)

# English and Spanish digit words, e.g. "five five five ..."
NUMBER_WORDS = frozenset(
    {
        "zero", "one", "two", "three", "four",
        "five", "six", "seven", "eight", "nine",
        "cero", "uno", "dos", "tres", "cuatro",
        "cinco", "seis", "siete", "ocho", "nueve",
    }
)
MIN_PHONE_DIGITS = 7


def contains_contact_info(text: str) -> bool:
    """True when ``text`` looks like it carries off-platform contact details."""
    if not text:
        return False
    lowered = text.lower()
    if EMAIL_PATTERN.search(lowered):
        return True
    # Digits are counted across separators: "555-12 34" is still a number
    if sum(ch.isdigit() for ch in lowered) >= MIN_PHONE_DIGITS:
        return True
    words = re.split(r"[^a-z]+", lowered)
    if sum(1 for word in words if word in NUMBER_WORDS) >= MIN_PHONE_DIGITS:
        return True
    return bool(CONTACT_KEYWORDS.search(lowered))


@dataclass
class ConversationPreview:
    user_id: int
    last_message: str
    last_message_at: datetime
    unread_count: int


def conversation_previews(messages: Iterable, user_id: int) -> list[ConversationPreview]:
    """One preview per counterpart, newest conversation first.

    ``messages`` are the caller's sent and received messages in any order.
    """
    previews: dict[int, ConversationPreview] = {}
    for message in sorted(messages, key=lambda m: (m.created_at, m.id)):
        other = message.receiver_id if message.sender_id == user_id else message.sender_id
        preview = previews.get(other)
        if preview is None:
            preview = previews[other] = ConversationPreview(
                other, message.content, message.created_at, 0
            )
        else:
            preview.last_message = message.content
            preview.last_message_at = message.created_at
        if message.receiver_id == user_id and not message.is_read:
            preview.unread_count += 1
    return sorted(previews.values(), key=lambda p: p.last_message_at, reverse=True)
