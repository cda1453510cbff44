"""Operator facing output."""

import sys
from typing import TextIO

from yarl import URL

from .models import HelloMessage

BANNER = """
Forward HTTP Session Initialized Successfully
---------------------------------------------
Session Hash: {hash}
Request URI: {request_uri}
Consumer URI: {consumer}

* Execute a Request to generate log below
---------------------------------------------"""


class Reporter:
    """Writes the session banner and one line per forwarded request."""

    def __init__(self, stream: TextIO | None = None, body_preview_length: int = 80) -> None:
        self._stream = stream or sys.stdout
        self._body_preview_length = body_preview_length

    def session_started(self, hello: HelloMessage, consumer: URL) -> None:
        self._write(BANNER.format(hash=hello.hash, request_uri=hello.request_uri, consumer=consumer))

    def request_forwarded(self, method: str, path: str, status: str, body: bytes) -> None:
        self._write(f"{method} {path}\t\t{status}\t\t{self._preview(body)}")

    def _preview(self, body: bytes) -> str:
        text = body.decode("utf-8", errors="replace").replace("\n", " ")
        if len(text) > self._body_preview_length:
            return text[: self._body_preview_length] + "..."
        return text

    def _write(self, line: str) -> None:
        print(line, file=self._stream, flush=True)
