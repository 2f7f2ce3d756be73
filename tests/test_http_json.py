from __future__ import annotations

import io
import unittest
from http import client as http_client
from unittest import mock
from urllib import error

from core.http_json import HttpTransportError, UrllibHttpJsonClient


def _response(status: int, body: bytes) -> mock.MagicMock:
    resp = mock.MagicMock()
    resp.status = status
    resp.read.return_value = body
    resp.__enter__.return_value = resp
    return resp


class UrllibHttpJsonClientTest(unittest.TestCase):
    def test_json_request_and_response(self) -> None:
        with mock.patch("core.http_json.request.urlopen", return_value=_response(200, b'{"code": 0}')) as urlopen:
            resp = UrllibHttpJsonClient().request_json(
                "post", "https://example.test/x", {"a": "ñ"}, headers={"Authorization": "Bearer t"}, timeout_sec=3
            )
        self.assertTrue(resp.ok)
        self.assertEqual(resp.payload, {"code": 0})
        req = urlopen.call_args.args[0]
        self.assertEqual(req.get_method(), "POST")
        self.assertEqual(req.data, '{"a": "ñ"}'.encode("utf-8"))
        self.assertEqual(req.get_header("Authorization"), "Bearer t")
        self.assertEqual(urlopen.call_args.kwargs["timeout"], 3)

    def test_http_error_becomes_response(self) -> None:
        http_error = error.HTTPError("https://example.test/x", 400, "Bad Request", {}, io.BytesIO(b'{"code": 99}'))
        with mock.patch("core.http_json.request.urlopen", side_effect=http_error):
            resp = UrllibHttpJsonClient().request_json("GET", "https://example.test/x")
        self.assertFalse(resp.ok)
        self.assertEqual(resp.status, 400)
        self.assertEqual(resp.payload, {"code": 99})

    def test_non_object_json_and_plain_text(self) -> None:
        with mock.patch("core.http_json.request.urlopen", return_value=_response(200, b"[1, 2]")):
            self.assertEqual(UrllibHttpJsonClient().request_json("GET", "https://e.test").payload, {"data": [1, 2]})
        with mock.patch("core.http_json.request.urlopen", return_value=_response(200, b"OK")):
            resp = UrllibHttpJsonClient().request_json("GET", "https://e.test")
        self.assertEqual(resp.payload, {})
        self.assertEqual(resp.text, "OK")

    def test_transport_errors_raise(self) -> None:
        for exc in (error.URLError("refused"), TimeoutError("slow")):
            with self.subTest(exc=exc):
                with mock.patch("core.http_json.request.urlopen", side_effect=exc):
                    with self.assertRaises(HttpTransportError):
                        UrllibHttpJsonClient().request_json("GET", "https://e.test")

    def test_dropped_connections_raise_transport_error(self) -> None:
        dropped = (
            http_client.RemoteDisconnected("Remote end closed connection without response"),
            http_client.IncompleteRead(b"{\"ok\""),
            ConnectionResetError(104, "reset by peer"),
        )
        for exc in dropped:
            with self.subTest(exc=exc):
                with mock.patch("core.http_json.request.urlopen", side_effect=exc):
                    with self.assertRaises(HttpTransportError):
                        UrllibHttpJsonClient().request_json("POST", "https://e.test", payload={"a": 1})

    def test_truncated_body_raises_transport_error(self) -> None:
        resp = mock.MagicMock()
        resp.status = 200
        resp.read.side_effect = http_client.IncompleteRead(b"{")
        resp.__enter__.return_value = resp
        with mock.patch("core.http_json.request.urlopen", return_value=resp):
            with self.assertRaises(HttpTransportError):
                UrllibHttpJsonClient().request_json("GET", "https://e.test")


if __name__ == "__main__":
    unittest.main()
