#!/usr/bin/env python3
from __future__ import annotations

import aws_cdk as cdk

from lead_intake_stack import LeadIntakeStack


app = cdk.App()

LeadIntakeStack(
    app,
    "LeadIntakeStack",
    env=cdk.Environment(
        account=app.node.try_get_context("account"),
        region=app.node.try_get_context("region"),
    ),
)

app.synth()
