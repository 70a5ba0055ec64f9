# mcpgate/server/runtime/handlers/setup.py
from __future__ import annotations

import html
import json

from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response

from mcpgate.server.runtime.auth.access_tokens import AccessTokenStore, SetupTokenInfo

_PAGE = """<html>
  <head>
    <script src="{cdn_url}"></script>
    <script id="token-info" type="application/json">{token_info}</script>
    <script type="text/javascript" src="/static/js/index.js"></script>
  </head>
  <body>
  </body>
</html>
"""


def render_setup_page(info: SetupTokenInfo, cdn_url: str) -> str:
    # "</" would end the inline script early.
    token_info = json.dumps(info.model_dump()).replace("</", "<\\/")
    return _PAGE.format(cdn_url=html.escape(cdn_url, quote=True), token_info=token_info)


class SetupPage:
    """GET /setup?token=<tokenId>: bootstrap page for connecting an integration."""

    def __init__(self, access_tokens: AccessTokenStore, cdn_url: str):
        self._access_tokens = access_tokens
        self._cdn_url = cdn_url

    async def handle(self, request: Request) -> Response:
        info = self._access_tokens.resolve(request.query_params.get("token"))
        if info is None:
            return JSONResponse({"error": "Invalid token"}, status_code=400)
        return HTMLResponse(render_setup_page(info, self._cdn_url))
