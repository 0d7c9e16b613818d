"""Tests for cachefront.client.response -- printing intercepted responses."""

from __future__ import annotations

import json

import httpx

from cachefront.cache.store import SOURCE_EXTENSION
from cachefront.client.response import extract_response_data, format_intercepted_response
from cachefront.output import OutputFormat, OutputManager, set_output


def _response(content: bytes, content_type: str, source: str = "cache") -> httpx.Response:
    return httpx.Response(
        200,
        headers={"Content-Type": content_type},
        content=content,
        extensions={SOURCE_EXTENSION: source},
    )


class TestExtractResponseData:
    def test_json_body_is_decoded(self) -> None:
        data = extract_response_data(_response(b'{"id": 1}', "application/json"))
        assert data == {"id": 1}

    def test_invalid_json_falls_back_to_text(self) -> None:
        data = extract_response_data(_response(b"{oops", "application/json"))
        assert data == "{oops"

    def test_html_is_text(self) -> None:
        data = extract_response_data(_response(b"<h1>Hi</h1>", "text/html"))
        assert data == "<h1>Hi</h1>"

    def test_empty_body(self) -> None:
        assert extract_response_data(_response(b"", "text/plain")) is None

    def test_binary_body_is_summarised(self) -> None:
        data = extract_response_data(_response(b"\x89PNG\xff\xfe", "image/png"))
        assert data == "<6 bytes of image/png>"


class TestFormatInterceptedResponse:
    def test_body_on_stdout_source_on_stderr(self, capfd) -> None:
        set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True))
        format_intercepted_response(_response(b"hello", "text/plain", source="fallback"))
        captured = capfd.readouterr()
        assert captured.out.strip() == "hello"
        assert "HTTP 200" in captured.err
        assert "source: fallback" in captured.err

    def test_json_mode(self, capfd) -> None:
        set_output(OutputManager(format=OutputFormat.JSON, no_color=True))
        format_intercepted_response(_response(b'{"a": [1, 2]}', "application/json"))
        captured = capfd.readouterr()
        assert json.loads(captured.out) == {"a": [1, 2]}

    def test_quiet_hides_status_line(self, capfd) -> None:
        set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True))
        format_intercepted_response(_response(b"body", "text/plain"))
        captured = capfd.readouterr()
        assert captured.err == ""
        assert "body" in captured.out
