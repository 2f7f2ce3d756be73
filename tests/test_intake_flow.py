from __future__ import annotations

import unittest

from core.enums import IntakeStep, LeadField, StepKind
from intake.flow import DEFAULT_STEPS, FlowDefinition, StepDefinition, build_flow


class FlowDefinitionTest(unittest.TestCase):
    def test_default_flow_order(self) -> None:
        flow = build_flow({})
        self.assertEqual(flow.first_step, IntakeStep.ASK_PRODUCT_INTEREST)
        self.assertEqual(
            flow.slots,
            (
                LeadField.PRODUCT_INTEREST,
                LeadField.USER_INTENT,
                LeadField.NAME,
                LeadField.COMPANY,
                LeadField.LOCATION,
                LeadField.PHONE,
                LeadField.EMAIL,
            ),
        )
        self.assertEqual(flow.next_step(IntakeStep.ASK_PRODUCT_INTEREST), IntakeStep.ASK_USER_INTENT)
        self.assertEqual(flow.next_step(IntakeStep.ASK_EMAIL), IntakeStep.COMPLETED)
        self.assertEqual(flow.slot_for_kind(StepKind.PHONE), LeadField.PHONE)

    def test_choice_prompt_lists_options(self) -> None:
        prompt = DEFAULT_STEPS[0].prompt
        self.assertIn("1. Equipos", prompt)
        self.assertIn("4. Renta", prompt)

    def test_configured_steps_with_shorthand_options(self) -> None:
        flow = build_flow(
            {
                "steps": [
                    {
                        "step": "ask_branch",
                        "kind": "choice",
                        "slot": "branch",
                        "question": "¿Qué sucursal?",
                        "options": {"1": "Norte", "2": "Sur"},
                    },
                    {"step": "ASK_NAME", "slot": "name", "question": "¿Nombre?"},
                    {"step": "ASK_EMAIL", "kind": "email", "slot": "email", "question": "¿Correo?"},
                ]
            }
        )
        self.assertEqual(flow.first_step, IntakeStep.ASK_BRANCH)
        branch = flow.definition(IntakeStep.ASK_BRANCH)
        self.assertEqual([option.label for option in branch.options], ["Norte", "Sur"])
        self.assertEqual(flow.definition(IntakeStep.ASK_NAME).kind, StepKind.TEXT)
        self.assertEqual(flow.next_step(IntakeStep.ASK_NAME), IntakeStep.ASK_EMAIL)
        self.assertFalse(flow.has_step(IntakeStep.ASK_PHONE))
        self.assertIsNone(flow.slot_for_kind(StepKind.PHONE))

    def test_option_list_forms(self) -> None:
        flow = build_flow(
            {
                "steps": [
                    {
                        "step": "ASK_USER_INTENT",
                        "kind": "choice",
                        "slot": "user_intent",
                        "question": "¿Qué necesitas?",
                        "options": ["Cotización", {"key": "9", "label": "Soporte", "keywords": ["ayuda"]}],
                    }
                ]
            }
        )
        options = flow.definition(IntakeStep.ASK_USER_INTENT).options
        self.assertEqual(options[0].key, "1")
        self.assertEqual(options[1].key, "9")
        self.assertEqual(options[1].keywords, ("ayuda",))

    def test_invalid_flows_are_rejected(self) -> None:
        name = StepDefinition(IntakeStep.ASK_NAME, StepKind.TEXT, "name", "¿Nombre?")
        with self.assertRaises(ValueError):
            FlowDefinition([])
        with self.assertRaises(ValueError):
            FlowDefinition([StepDefinition(IntakeStep.COMPLETED, StepKind.TEXT, "x", "?")])
        with self.assertRaises(ValueError):
            FlowDefinition([name, StepDefinition(IntakeStep.ASK_COMPANY, StepKind.TEXT, "name", "?")])
        with self.assertRaises(ValueError):
            FlowDefinition([name, name])
        with self.assertRaises(ValueError):
            FlowDefinition([StepDefinition(IntakeStep.ASK_BRANCH, StepKind.CHOICE, "branch", "?")])
        with self.assertRaises(ValueError):
            build_flow({"steps": [{"step": "ASK_NAME", "question": "¿Nombre?"}]})
        with self.assertRaises(ValueError):
            build_flow({"steps": [{"step": "ASK_SOMETHING", "slot": "x", "question": "?"}]})


if __name__ == "__main__":
    unittest.main()
