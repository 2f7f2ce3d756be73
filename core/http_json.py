from __future__ import annotations

import json
from dataclasses import dataclass, field
from http import client as http_client
from typing import Any, Protocol
from urllib import error, request


class HttpTransportError(RuntimeError):
    pass


@dataclass(slots=True)
class JsonResponse:
    status: int
    payload: dict[str, Any] = field(default_factory=dict)
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class HttpJsonClient(Protocol):
    def request_json(
        self,
        method: str,
        url: str,
        payload: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout_sec: float = 10.0,
    ) -> JsonResponse:
        ...


class UrllibHttpJsonClient:
    """JSON over urllib. HTTP error statuses come back as responses; only transport failures raise."""

    def request_json(
        self,
        method: str,
        url: str,
        payload: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout_sec: float = 10.0,
    ) -> JsonResponse:
        data = None
        if payload is not None:
            data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        req = request.Request(url=url, data=data, method=method.upper())
        req.add_header("Content-Type", "application/json; charset=utf-8")
        for key, value in (headers or {}).items():
            req.add_header(key, value)

        try:
            with request.urlopen(req, timeout=timeout_sec) as resp:
                status = int(getattr(resp, "status", 200))
                text = resp.read().decode("utf-8", errors="ignore")
        except error.HTTPError as exc:
            try:
                text = exc.read().decode("utf-8", errors="ignore")
            except Exception:
                text = ""
            return JsonResponse(status=int(exc.code), payload=_parse_json_object(text), text=text)
        except error.URLError as exc:
            raise HttpTransportError(f"connection error: {exc}") from exc
        except TimeoutError as exc:
            raise HttpTransportError(f"timeout after {timeout_sec}s: {exc}") from exc
        except (OSError, http_client.HTTPException) as exc:
            raise HttpTransportError(f"connection dropped: {exc!r}") from exc
        return JsonResponse(status=status, payload=_parse_json_object(text), text=text)


def _parse_json_object(text: str) -> dict[str, Any]:
    if not text.strip():
        return {}
    try:
        parsed = json.loads(text)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {"data": parsed}
