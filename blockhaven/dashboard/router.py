"""Minimal HTML shells for the protected dashboard and the login page.

The interactive dashboard is a separate frontend; these pages only give the
request gate real page routes to protect and redirect to.
"""
from html import escape

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

router = APIRouter()

PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
</head>
<body>
{body}
</body>
</html>
"""


@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard(request: Request):
    identity = request.state.identity
    body = (
        f"<h1>BlockHaven Admin</h1>"
        f"<p>Signed in as {escape(identity.username)}</p>"
        f'<div id="app" data-api="/api/admin"></div>'
    )
    return PAGE.format(title="BlockHaven Admin", body=body)


@router.get("/login", response_class=HTMLResponse)
async def login():
    body = "<h1>Sign in</h1><p>Sign in with GitHub to manage the server.</p>"
    return PAGE.format(title="Sign in - BlockHaven", body=body)
