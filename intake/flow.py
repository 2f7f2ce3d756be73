from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from core.enums import IntakeStep, LeadField, StepKind


@dataclass(frozen=True, slots=True)
class ChoiceOption:
    key: str
    label: str
    keywords: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class StepDefinition:
    step: IntakeStep
    kind: StepKind
    slot: str
    question: str
    options: tuple[ChoiceOption, ...] = ()

    @property
    def prompt(self) -> str:
        if not self.options:
            return self.question
        lines = [self.question]
        lines.extend(f"{option.key}. {option.label}" for option in self.options)
        return "\n".join(lines)


DEFAULT_STEPS: tuple[StepDefinition, ...] = (
    StepDefinition(
        step=IntakeStep.ASK_PRODUCT_INTEREST,
        kind=StepKind.CHOICE,
        slot=LeadField.PRODUCT_INTEREST,
        question="¡Hola! Gracias por escribirnos. ¿Qué producto te interesa? Responde con el número:",
        options=(
            ChoiceOption("1", "Equipos", ("equipo", "maquina", "maquinaria")),
            ChoiceOption("2", "Refacciones", ("refaccion", "repuesto", "partes")),
            ChoiceOption("3", "Servicio técnico", ("servicio", "mantenimiento", "reparacion")),
            ChoiceOption("4", "Renta", ("rentar", "alquiler", "arrendamiento")),
        ),
    ),
    StepDefinition(
        step=IntakeStep.ASK_USER_INTENT,
        kind=StepKind.CHOICE,
        slot=LeadField.USER_INTENT,
        question="¿En qué podemos ayudarte?",
        options=(
            ChoiceOption("1", "Cotización", ("cotizar", "precio", "presupuesto")),
            ChoiceOption("2", "Información", ("info", "informacion", "detalles")),
            ChoiceOption("3", "Hablar con un asesor", ("asesor", "vendedor", "llamada")),
        ),
    ),
    StepDefinition(
        step=IntakeStep.ASK_NAME,
        kind=StepKind.TEXT,
        slot=LeadField.NAME,
        question="¿Cuál es tu nombre?",
    ),
    StepDefinition(
        step=IntakeStep.ASK_COMPANY,
        kind=StepKind.TEXT,
        slot=LeadField.COMPANY,
        question="¿Cómo se llama tu empresa?",
    ),
    StepDefinition(
        step=IntakeStep.ASK_LOCATION,
        kind=StepKind.TEXT,
        slot=LeadField.LOCATION,
        question="¿En qué ciudad o estado te encuentras?",
    ),
    StepDefinition(
        step=IntakeStep.ASK_PHONE,
        kind=StepKind.PHONE,
        slot=LeadField.PHONE,
        question="¿A qué número de teléfono podemos llamarte?",
    ),
    StepDefinition(
        step=IntakeStep.ASK_EMAIL,
        kind=StepKind.EMAIL,
        slot=LeadField.EMAIL,
        question="Por último, ¿cuál es tu correo electrónico?",
    ),
)


class FlowDefinition:
    """Ordered, linear step table. The last step leads to COMPLETED."""

    def __init__(self, steps: tuple[StepDefinition, ...] | list[StepDefinition] = DEFAULT_STEPS) -> None:
        ordered = tuple(steps)
        if not ordered:
            raise ValueError("intake flow needs at least one step")
        seen_steps: set[IntakeStep] = set()
        seen_slots: set[str] = set()
        for definition in ordered:
            if definition.step == IntakeStep.COMPLETED:
                raise ValueError("COMPLETED is terminal and cannot be configured as a step")
            if definition.step in seen_steps:
                raise ValueError(f"duplicate intake step: {definition.step.value}")
            if definition.slot in seen_slots:
                raise ValueError(f"duplicate intake slot: {definition.slot}")
            if definition.kind == StepKind.CHOICE and not definition.options:
                raise ValueError(f"choice step without options: {definition.step.value}")
            seen_steps.add(definition.step)
            seen_slots.add(definition.slot)
        self.steps = ordered
        self._by_step = {definition.step: definition for definition in ordered}
        self._next: dict[IntakeStep, IntakeStep] = {}
        for index, definition in enumerate(ordered):
            following = ordered[index + 1].step if index + 1 < len(ordered) else IntakeStep.COMPLETED
            self._next[definition.step] = following

    @property
    def first_step(self) -> IntakeStep:
        return self.steps[0].step

    @property
    def slots(self) -> tuple[str, ...]:
        return tuple(definition.slot for definition in self.steps)

    def definition(self, step: IntakeStep) -> StepDefinition:
        try:
            return self._by_step[step]
        except KeyError as exc:
            raise KeyError(f"step is not part of this flow: {step}") from exc

    def next_step(self, step: IntakeStep) -> IntakeStep:
        return self._next.get(step, IntakeStep.COMPLETED)

    def has_step(self, step: IntakeStep) -> bool:
        return step in self._by_step

    def slot_for_kind(self, kind: StepKind) -> str | None:
        for definition in self.steps:
            if definition.kind == kind:
                return definition.slot
        return None


def build_flow(intake_conf: dict[str, Any] | None) -> FlowDefinition:
    raw_steps = (intake_conf or {}).get("steps")
    if not raw_steps:
        return FlowDefinition(DEFAULT_STEPS)
    if not isinstance(raw_steps, list):
        raise ValueError("intake.steps must be a list")
    return FlowDefinition([_step_from_config(item) for item in raw_steps])


def _step_from_config(item: Any) -> StepDefinition:
    if not isinstance(item, dict):
        raise ValueError(f"intake step must be a mapping: {item!r}")
    step = IntakeStep(str(item.get("step", "")).strip().upper())
    kind = StepKind(str(item.get("kind", StepKind.TEXT.value)).strip().lower())
    slot = str(item.get("slot", "") or "").strip()
    question = str(item.get("question", "") or "").strip()
    if not slot:
        raise ValueError(f"intake step {step.value} has no slot")
    if not question:
        raise ValueError(f"intake step {step.value} has no question")
    return StepDefinition(
        step=step,
        kind=kind,
        slot=slot,
        question=question,
        options=_options_from_config(item.get("options")),
    )


def _options_from_config(raw: Any) -> tuple[ChoiceOption, ...]:
    if not raw:
        return ()
    # {"1": "A", "2": "B"} shorthand
    if isinstance(raw, dict):
        return tuple(ChoiceOption(str(key).strip(), str(label).strip()) for key, label in raw.items())
    options: list[ChoiceOption] = []
    for index, entry in enumerate(raw, start=1):
        if isinstance(entry, str):
            options.append(ChoiceOption(str(index), entry.strip()))
            continue
        keywords = entry.get("keywords") or []
        options.append(
            ChoiceOption(
                key=str(entry.get("key", index)).strip(),
                label=str(entry.get("label", "") or "").strip(),
                keywords=tuple(str(keyword).strip() for keyword in keywords if str(keyword).strip()),
            )
        )
    return tuple(options)
