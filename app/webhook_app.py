from __future__ import annotations

import os
from typing import Any

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from app.config import load_runtime_config
from app.logging_setup import configure_logging
from bitable.leads_api import LeadsApiHandler
from whatsapp.webhook_handler import WhatsAppWebhookHandler

DEFAULT_CONFIG_PATH = "config.yaml"

CONFIG_PATH = os.getenv("CONFIG_PATH", DEFAULT_CONFIG_PATH)
CONFIG = load_runtime_config(CONFIG_PATH)
configure_logging(CONFIG)
HANDLER = WhatsAppWebhookHandler(CONFIG)
LEADS_API = LeadsApiHandler(
    api_key=str(CONFIG.get("leads_api", {}).get("api_key", "") or ""),
    bitable_client=HANDLER.bitable_client,
)

app = FastAPI(title="WhatsApp Lead Intake", version="0.1.0")
WEBHOOK_PATH = str(CONFIG.get("whatsapp", {}).get("webhook_path", "/webhook"))


@app.get("/healthz")
async def healthz() -> dict[str, Any]:
    return {"ok": True}


@app.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "OK"


@app.get(WEBHOOK_PATH, response_class=PlainTextResponse)
async def verify_webhook(request: Request) -> PlainTextResponse:
    status_code, body = HANDLER.handle_verification(request.query_params)
    return PlainTextResponse(content=body, status_code=status_code)


@app.post(WEBHOOK_PATH)
async def whatsapp_webhook(request: Request) -> JSONResponse:
    body = await request.body()
    status_code, payload = HANDLER.handle_event(body)
    return JSONResponse(status_code=status_code, content=payload)


@app.post("/api/leads")
async def create_lead(
    request: Request,
    x_api_key: str | None = Header(default=None),
) -> JSONResponse:
    body = await request.body()
    status_code, payload = LEADS_API.handle("POST", x_api_key, body)
    return JSONResponse(status_code=status_code, content=payload)


def main() -> None:
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    main()
