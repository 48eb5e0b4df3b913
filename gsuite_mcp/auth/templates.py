"""HTML pages rendered by the OAuth callback listener.

Presentation only; nothing parses these pages. All interpolated values are
HTML-escaped.
"""

from __future__ import annotations

from html import escape

_STYLE = """
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
               background: #F8F9FA; min-height: 100vh; display: flex;
               align-items: center; justify-content: center; margin: 0; }}
        .container {{ background: white; padding: 40px; border-radius: 12px;
                     box-shadow: 0 4px 24px rgba(0,0,0,0.08); max-width: 480px;
                     border: 1px solid #E3E6E8; }}
        h1 {{ margin: 0 0 12px; font-size: 22px; color: {accent}; }}
        p {{ color: #5F6368; margin: 0 0 16px; line-height: 1.5; }}
        .email {{ font-weight: 600; color: #202124; }}
        ul {{ color: #5F6368; padding-left: 20px; margin: 0 0 16px; }}
"""

SUCCESS_PAGE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Authenticated - gsuite-mcp</title>
    <style>{style}</style>
</head>
<body>
    <div class="container">
        <h1>Authentication Successful</h1>
        <p>Signed in as <span class="email">{email}</span>.</p>
        {other_accounts}
        <p>You can close this window and return to the application.</p>
    </div>
</body>
</html>
"""

OTHER_ACCOUNTS_BLOCK = """<p>Other authenticated accounts:</p>
        <ul>
{items}
        </ul>"""

ERROR_PAGE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{title} - gsuite-mcp</title>
    <style>{style}</style>
</head>
<body>
    <div class="container">
        <h1>{title}</h1>
        <p>{message}</p>
        <p>You can close this window and try again.</p>
    </div>
</body>
</html>
"""


def render_success_page(email: str, other_accounts: list[str] | None = None) -> str:
    """Render the page shown after the account is resolved and saved."""
    others = ""
    if other_accounts:
        items = "\n".join(
            f"            <li>{escape(account)}</li>" for account in other_accounts
        )
        others = OTHER_ACCOUNTS_BLOCK.format(items=items)

    return SUCCESS_PAGE.format(
        style=_STYLE.format(accent="#188038"),
        email=escape(email),
        other_accounts=others,
    )


def render_error_page(title: str, message: str) -> str:
    """Render an error page with a title and message."""
    return ERROR_PAGE.format(
        style=_STYLE.format(accent="#C5221F"),
        title=escape(title),
        message=escape(message),
    )


__all__ = [
    "render_success_page",
    "render_error_page",
]
