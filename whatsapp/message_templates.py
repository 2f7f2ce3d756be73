from __future__ import annotations

from typing import Any, Iterable

from core.enums import LeadField

MAX_TEXT_LENGTH = 4096

SLOT_LABELS = {
    LeadField.BRANCH: "Sucursal",
    LeadField.PRODUCT_INTEREST: "Producto",
    LeadField.USER_INTENT: "Interés",
    LeadField.NAME: "Nombre",
    LeadField.COMPANY: "Empresa",
    LeadField.LOCATION: "Ubicación",
    LeadField.PHONE: "Teléfono",
    LeadField.EMAIL: "Correo",
}

DEFAULT_FALLBACK_REPLY = "Gracias. Un asesor te contactará pronto."


def _text(value: Any) -> str:
    if value in (None, ""):
        return "-"
    return str(value)


def _slot_label(slot: str) -> str:
    return SLOT_LABELS.get(slot, slot.replace("_", " ").capitalize())


def summary_lines(answers: dict[str, str], slots: Iterable[str]) -> list[str]:
    return [f"- {_slot_label(slot)}: {_text(answers.get(slot))}" for slot in slots if slot in answers]


def build_completed_message(answers: dict[str, str], slots: Iterable[str]) -> str:
    name = answers.get(LeadField.NAME)
    greeting = f"¡Gracias, {name}! Registramos tus datos:" if name else "¡Gracias! Registramos tus datos:"
    lines = [greeting, *summary_lines(answers, slots), "Un asesor te contactará pronto."]
    return "\n".join(lines)


def build_already_registered_message(reset_keywords: Iterable[str] = ("menu",)) -> str:
    keyword = next(iter(reset_keywords), "menu")
    return (
        "Ya tenemos tu registro y un asesor te contactará pronto. "
        f'Si quieres empezar de nuevo, escribe "{keyword}".'
    )


def build_text_only_message() -> str:
    return "Por ahora solo podemos leer mensajes de texto. Por favor escribe tu respuesta."


def truncate(text: str, limit: int = MAX_TEXT_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"
