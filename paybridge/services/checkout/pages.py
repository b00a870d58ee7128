"""Minimal HTML bodies for browser-facing flows."""

import json
from html import escape
from typing import Any


def _js(value: Any) -> str:
    """JSON literal safe to embed inside a script element."""

    return json.dumps(value).replace("</", "<\\/")


def _page(title: str, body: str, head: str = "") -> str:
    return (
        "<!DOCTYPE html>\n<html lang=\"en\">\n<head>\n<meta charset=\"UTF-8\">\n"
        f"<meta name=\"viewport\" content=\"width=device-width, initial-scale=1.0\">\n<title>{escape(title)}</title>\n"
        f"{head}</head>\n<body>\n{body}\n</body>\n</html>\n"
    )


def checkout_iframe_page(redirect_url: str, merchant_id: str, window_vars: dict[str, Any]) -> str:
    """Hosted checkout embedded in an iframe, with the order context on `window`."""

    assignments = {"merchantId": merchant_id, **window_vars}
    script = "\n".join(
        f"window.{key} = {_js(value)};" for key, value in assignments.items()
    )
    body = (
        f"<iframe id=\"checkout\" src=\"{escape(redirect_url)}\" "
        "style=\"border:0;width:100%;height:100vh\" allow=\"payment\"></iframe>\n"
        f"<script>\n{script}\n</script>"
    )
    return _page("Checkout", body)


def redirect_page(target_url: str) -> str:
    """Immediate meta-refresh redirect with a manual fallback link."""

    target = escape(target_url)
    head = (
        f"<meta http-equiv=\"refresh\" content=\"0;url={target}\">\n"
        f"<script>window.location.href = {_js(target_url)};</script>\n"
    )
    body = (
        "<h2>Redirecting to Payment...</h2>\n"
        "<p>If you're not redirected automatically, please click the link below:</p>\n"
        f"<a href=\"{target}\">Go to Payment Page</a>"
    )
    return _page("Redirecting to Payment...", body, head)


def error_page(heading: str, message: str) -> str:
    body = f"<h1>{escape(heading)}</h1>\n<p>{escape(message)}</p>\n<a href=\"/\">Return to home</a>"
    return _page(heading, body)


def payment_error_page(reason: str | None, order_id: str | None) -> str:
    detail = f"Error: {reason}" if reason else "An error occurred during payment processing."
    body = f"<h1>Payment Error</h1>\n<div class=\"error-details\">{escape(detail)}</div>\n"
    if order_id:
        body += f"<div class=\"transaction-id\">Transaction ID: {escape(order_id)}</div>\n"
    body += "<a href=\"/\" class=\"home-button\">Return to Home</a>"
    return _page("Payment Error", body)
