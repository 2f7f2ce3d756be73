from __future__ import annotations

from typing import Any

from core.errors import FlowEngineError
from core.http_json import HttpJsonClient, HttpTransportError, UrllibHttpJsonClient


class FlowEngineClient:
    """Forwards the raw webhook payload to the spreadsheet flow engine and reads back its reply."""

    def __init__(
        self,
        url: str,
        shared_secret: str | None = None,
        timeout_sec: float = 8.0,
        http_client: HttpJsonClient | None = None,
    ) -> None:
        self.url = (url or "").strip()
        self.shared_secret = (shared_secret or "").strip()
        self.timeout_sec = float(timeout_sec)
        self.http_client = http_client or UrllibHttpJsonClient()

    def request_reply(self, payload: dict[str, Any]) -> str | None:
        if not self.url:
            raise FlowEngineError("flow_engine.url is required")
        headers = {"X-Flow-Secret": self.shared_secret} if self.shared_secret else {}
        try:
            resp = self.http_client.request_json("POST", self.url, payload, headers=headers, timeout_sec=self.timeout_sec)
        except HttpTransportError as exc:
            raise FlowEngineError(f"flow engine connection error: {exc}") from exc
        if not resp.ok:
            raise FlowEngineError("flow engine error", status=resp.status, body=resp.text)
        reply = resp.payload.get("reply")
        if not isinstance(reply, str) or not reply.strip():
            return None
        return reply.strip()


def create_flow_engine_client(config: dict[str, Any]) -> FlowEngineClient | None:
    conf = config.get("flow_engine", {})
    url = str(conf.get("url", "") or "").strip()
    if not url:
        return None
    return FlowEngineClient(
        url=url,
        shared_secret=str(conf.get("shared_secret", "") or ""),
        timeout_sec=float(conf.get("timeout_sec", 8)),
    )
