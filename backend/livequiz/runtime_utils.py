from __future__ import annotations

import hashlib
import re
import time
import uuid
from typing import Any

from .runtime_constants import MAX_USERNAME_LENGTH


def now_ms() -> int:
    return int(time.time() * 1000)


def random_id() -> str:
    return str(uuid.uuid4())


def content_hash(text: str) -> str:
    return hashlib.sha256(text.strip().lower().encode("utf-8")).hexdigest()


def sanitize_username(raw: Any) -> str:
    value = re.sub(r"\s+", " ", str(raw or "")).strip()
    return value[:MAX_USERNAME_LENGTH]


def normalize_answer(raw: Any) -> str | None:
    """Return the single uppercase letter a chat message answers with, if any."""
    value = str(raw or "").strip().upper()
    if len(value) != 1 or not value.isalpha():
        return None
    return value


def letter_for_index(index: int, answer_letters: str) -> str:
    return answer_letters[index]


def format_message(template: str, **replacements: Any) -> str:
    text = template
    for key, value in replacements.items():
        text = text.replace("{" + key + "}", str(value))
    return text
