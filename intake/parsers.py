from __future__ import annotations

import re
import unicodedata
from typing import Iterable

from core.enums import StepKind
from core.errors import ValidationFailure
from intake.flow import ChoiceOption, StepDefinition

_WHITESPACE_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D+")
_NUMERIC_CHOICE_RE = re.compile(r"^(?:opcion\s*|#)?(\d{1,2})\s*[.)\-]?$")
_EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9\-]+(?:\.[A-Za-z0-9\-]+)*\.[A-Za-z]{2,}$")
_MIN_SUBSTRING_MATCH = 3

DEFAULT_RESET_KEYWORDS = ("menu", "reset", "reiniciar", "hola", "inicio", "buenas")


def normalize_text(text: str | None) -> str:
    return _WHITESPACE_RE.sub(" ", str(text or "")).strip()


def strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_choice_text(text: str | None) -> str:
    return strip_diacritics(normalize_text(text)).lower()


def is_reset_command(text: str | None, keywords: Iterable[str] = DEFAULT_RESET_KEYWORDS) -> bool:
    normalized = normalize_choice_text(text).strip(" !¡.?¿,")
    if not normalized:
        return False
    return normalized in {normalize_choice_text(keyword) for keyword in keywords}


def parse_choice(text: str, options: Iterable[ChoiceOption]) -> str:
    normalized = normalize_choice_text(text)
    if not normalized:
        raise ValidationFailure("empty choice")
    choices = tuple(options)

    numeric = _NUMERIC_CHOICE_RE.match(normalized)
    if numeric is not None:
        key = numeric.group(1).lstrip("0") or "0"
        for option in choices:
            if option.key.lstrip("0") == key:
                return option.label
        raise ValidationFailure(f"unknown option number: {key}")

    for option in choices:
        if normalized in _tokens(option):
            return option.label

    matched = {
        option.label
        for option in choices
        for token in _tokens(option)
        if len(token) >= _MIN_SUBSTRING_MATCH and re.search(rf"\b{re.escape(token)}\b", normalized)
    }
    if len(matched) == 1:
        return matched.pop()
    if matched:
        raise ValidationFailure(f"ambiguous choice: {sorted(matched)}")
    raise ValidationFailure(f"unrecognized choice: {normalized}")


def parse_free_text(text: str, min_length: int = 2) -> str:
    value = normalize_text(text)
    if len(value) < max(1, int(min_length)):
        raise ValidationFailure(f"text shorter than {min_length} characters")
    return value


def parse_phone(text: str, min_digits: int = 8) -> str:
    digits = _NON_DIGIT_RE.sub("", str(text or ""))
    if len(digits) < int(min_digits):
        raise ValidationFailure(f"phone needs at least {min_digits} digits")
    return digits


def parse_email(text: str) -> str:
    value = normalize_text(text)
    if not _EMAIL_RE.match(value):
        raise ValidationFailure("invalid email address")
    return value


def parse_answer(
    definition: StepDefinition,
    text: str,
    *,
    min_text_length: int = 2,
    min_phone_digits: int = 8,
) -> str:
    if definition.kind == StepKind.CHOICE:
        return parse_choice(text, definition.options)
    if definition.kind == StepKind.PHONE:
        return parse_phone(text, min_phone_digits)
    if definition.kind == StepKind.EMAIL:
        return parse_email(text)
    return parse_free_text(text, min_text_length)


def _tokens(option: ChoiceOption) -> set[str]:
    tokens = {normalize_choice_text(option.label)}
    tokens.update(normalize_choice_text(keyword) for keyword in option.keywords)
    tokens.discard("")
    return tokens
