"""HTML pages written back to the browser at the end of a flow.

The listener answers exactly one request and closes the connection, so
every response carries ``Content-Length`` and ``Connection: close``.
Interpolated values are HTML-escaped; the error text can originate from the
callback URL and would otherwise be reflected into the page.
"""

from __future__ import annotations

import html
from dataclasses import dataclass

_STYLE = """\
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
       display: flex; justify-content: center; align-items: center; height: 100vh; margin: 0;
       background: %(background)s; color: white; }
.container { text-align: center; padding: 40px; }
h1 { margin-bottom: 10px; }
p { opacity: 0.9; }"""

_PAGE = """\
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>%(title)s</title>
<style>
%(style)s
</style>
</head>
<body>
<div class="container">
<h1>%(heading)s</h1>
%(paragraphs)s
</div>
</body>
</html>"""

_SUCCESS_BACKGROUND = "linear-gradient(135deg, #667eea 0%, #764ba2 100%)"
_FAILURE_BACKGROUND = "linear-gradient(135deg, #f093fb 0%, #f5576c 100%)"


@dataclass(frozen=True)
class HttpResponse:
    """A complete HTTP/1.1 response ready to be written to the socket."""

    status: int
    reason: str
    body: str
    content_type: str = "text/html; charset=utf-8"

    def to_bytes(self) -> bytes:
        payload = self.body.encode("utf-8")
        head = (
            f"HTTP/1.1 {self.status} {self.reason}\r\n"
            f"Content-Type: {self.content_type}\r\n"
            f"Content-Length: {len(payload)}\r\n"
            "Cache-Control: no-store\r\n"
            "Connection: close\r\n"
            "\r\n"
        )
        return head.encode("ascii") + payload


class ResponseRenderer:
    """Builds the success and failure pages shown after the redirect.

    Args:
        app_name: Shown in the "return to ..." hint on both pages.
    """

    def __init__(self, app_name: str = "the application") -> None:
        self._app_name = app_name

    def success(self) -> HttpResponse:
        """Return the static 200 page shown after a completed exchange."""
        body = _PAGE % {
            "title": "Authentication Complete",
            "style": _STYLE % {"background": _SUCCESS_BACKGROUND},
            "heading": "&#10003; Authentication Successful",
            "paragraphs": (
                f"<p>You can close this window and return to "
                f"{html.escape(self._app_name)}.</p>"
            ),
        }
        return HttpResponse(status=200, reason="OK", body=body)

    def failure(self, message: str) -> HttpResponse:
        """Return the 400 page embedding *message* (escaped)."""
        body = _PAGE % {
            "title": "Authentication Failed",
            "style": _STYLE % {"background": _FAILURE_BACKGROUND},
            "heading": "&#10007; Authentication Failed",
            "paragraphs": (
                f"<p>{html.escape(message)}</p>\n"
                "<p>Please close this window and try again.</p>"
            ),
        }
        return HttpResponse(status=400, reason="Bad Request", body=body)
