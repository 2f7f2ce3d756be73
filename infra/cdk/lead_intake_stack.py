from __future__ import annotations

from pathlib import Path

from aws_cdk import (
    BundlingOptions,
    CfnOutput,
    Duration,
    RemovalPolicy,
    Stack,
    aws_apigatewayv2 as apigwv2,
    aws_apigatewayv2_integrations as apigwv2_integrations,
    aws_dynamodb as dynamodb,
    aws_lambda as lambda_,
    aws_secretsmanager as secretsmanager,
)
from constructs import Construct


class LeadIntakeStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, **kwargs: object) -> None:
        super().__init__(scope, construct_id, **kwargs)

        prefix = str(self.node.try_get_context("prefix") or "wa-intake")
        webhook_path = str(self.node.try_get_context("webhook_path") or "/webhook")
        app_secrets_name = str(self.node.try_get_context("app_secrets_name") or "")
        config_path = str(self.node.try_get_context("config_path") or "config.yaml")
        lark_app_token = str(self.node.try_get_context("lark_app_token") or "")
        lark_table_id = str(self.node.try_get_context("lark_table_id") or "")
        app_secret = (
            secretsmanager.Secret.from_secret_name_v2(
                self,
                "AppSecrets",
                app_secrets_name,
            )
            if app_secrets_name
            else None
        )

        sessions_table = dynamodb.Table(
            self,
            "IntakeSessionsTable",
            table_name=f"{prefix}-sessions",
            partition_key=dynamodb.Attribute(name="sender_id", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            removal_policy=RemovalPolicy.DESTROY,
            time_to_live_attribute="expires_at_epoch",
        )
        event_table = dynamodb.Table(
            self,
            "EventDedupeTable",
            table_name=f"{prefix}-event-dedupe",
            partition_key=dynamodb.Attribute(name="event_id", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            removal_policy=RemovalPolicy.DESTROY,
            time_to_live_attribute="expires_at_epoch",
        )

        lambda_asset_path = str(Path(__file__).resolve().parents[2])
        lambda_asset_excludes = [
            ".git/**",
            ".venv/**",
            ".venv*/**",
            "venv/**",
            "env/**",
            "__pycache__/**",
            "**/__pycache__/**",
            "*.pyc",
            "data/**",
            "tests/**",
            "infra/**",
            "cdk.out/**",
            "*.md",
        ]
        webhook_fn = lambda_.Function(
            self,
            "WebhookFunction",
            function_name=f"{prefix}-webhook",
            runtime=lambda_.Runtime.PYTHON_3_12,
            handler="app.lambda_handlers.webhook_handler.lambda_handler",
            code=lambda_.Code.from_asset(
                lambda_asset_path,
                exclude=lambda_asset_excludes,
                bundling=_dependency_bundling(),
            ),
            timeout=Duration.seconds(30),
            memory_size=256,
            environment={
                "CONFIG_PATH": config_path,
                "INTAKE_BACKEND": "dynamodb",
                "DDB_TABLE_PREFIX": prefix,
                "DDB_SESSIONS_TABLE": sessions_table.table_name,
                "DDB_EVENT_TABLE": event_table.table_name,
                "WEBHOOK_PATH": webhook_path,
                "LARK_APP_TOKEN": lark_app_token,
                "LARK_TABLE_ID": lark_table_id,
                "BITABLE_ENABLED": "true" if lark_app_token and lark_table_id else "false",
                "APP_SECRETS_ARN": app_secret.secret_arn if app_secret else "",
                "APP_SECRETS_NAME": app_secrets_name,
            },
        )

        sessions_table.grant_read_write_data(webhook_fn)
        event_table.grant_read_write_data(webhook_fn)
        if app_secret is not None:
            app_secret.grant_read(webhook_fn)

        webhook_api = apigwv2.HttpApi(
            self,
            "WebhookApi",
            api_name=f"{prefix}-webhook",
        )
        integration = apigwv2_integrations.HttpLambdaIntegration("WebhookIntegration", webhook_fn)
        webhook_api.add_routes(
            path=webhook_path,
            methods=[apigwv2.HttpMethod.GET, apigwv2.HttpMethod.POST],
            integration=integration,
        )
        webhook_api.add_routes(
            path="/api/leads",
            methods=[apigwv2.HttpMethod.POST],
            integration=integration,
        )

        CfnOutput(self, "WebhookUrl", value=f"{webhook_api.api_endpoint}{webhook_path}")
        CfnOutput(self, "LeadsApiUrl", value=f"{webhook_api.api_endpoint}/api/leads")
        CfnOutput(self, "SessionsTableName", value=sessions_table.table_name)


def _dependency_bundling() -> BundlingOptions:
    # The runtime ships only boto3; PyYAML and python-dotenv are imported at cold start.
    return BundlingOptions(
        image=lambda_.Runtime.PYTHON_3_12.bundling_image,
        command=[
            "bash",
            "-c",
            "cp -r /asset-input /tmp/src"
            " && pip install --no-cache-dir /tmp/src -t /asset-output"
            " && if [ -f /tmp/src/config.yaml ]; then cp /tmp/src/config.yaml /asset-output/; fi",
        ],
    )
