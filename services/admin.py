# services/admin.py: Shopify Admin GraphQL transport + OAuth handshake (ShopifyAPI)
from __future__ import annotations

import re
import logging
from typing import Any, Callable, Dict, Mapping, Optional

import requests
import shopify

from services.client import TIMEOUT, http

log = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2025-07"

_SHOP_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9\-]*\.myshopify\.com$")

GraphQLSend = Callable[[str, Optional[Dict[str, Any]]], Dict[str, Any]]


def shop_domain(store: str) -> str:
    """'my-store' | 'my-store.myshopify.com' | 'https://my-store.myshopify.com/' -> 'my-store.myshopify.com'"""
    s = (store or "").strip().replace("https://", "").replace("http://", "").strip("/")
    if s and not s.endswith(".myshopify.com"):
        s = f"{s}.myshopify.com"
    return s


def valid_shop_domain(shop: Optional[str]) -> bool:
    return bool(shop) and bool(_SHOP_RE.match(shop))


def graphql_endpoint(shop: str, api_version: str = DEFAULT_API_VERSION) -> str:
    return f"https://{shop_domain(shop)}/admin/api/{api_version}/graphql.json"


def admin_headers(access_token: str) -> Dict[str, str]:
    return {"X-Shopify-Access-Token": access_token, "Content-Type": "application/json", "Accept": "application/json"}


def graphql_sender(shop: str, access_token: str, api_version: str = DEFAULT_API_VERSION) -> GraphQLSend:
    """Bind store credentials into a send(query, variables) -> body callable."""
    url = graphql_endpoint(shop, api_version)
    headers = admin_headers(access_token)

    def send(query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        r = http("POST", url, headers=headers, json={"query": query, "variables": variables or {}})
        return r.json()

    return send


def proxy_graphql(shop: str, access_token: str, body: bytes,
                  api_version: str = DEFAULT_API_VERSION) -> requests.Response:
    """Forward a raw GraphQL request body as-is; the caller relays status and payload."""
    return requests.post(graphql_endpoint(shop, api_version), data=body,
                         headers=admin_headers(access_token), timeout=TIMEOUT)


# ─────────────────────────────────────────────────────────────
# OAuth (ShopifyAPI session handshake)
# ─────────────────────────────────────────────────────────────
def oauth_session(shop: str, api_key: str, api_secret: str,
                  api_version: str = DEFAULT_API_VERSION) -> shopify.Session:
    shopify.Session.setup(api_key=api_key, secret=api_secret)
    return shopify.Session(shop, api_version)


def authorize_url(shop: str, api_key: str, api_secret: str, scopes: str, redirect_uri: str, state: str,
                  api_version: str = DEFAULT_API_VERSION) -> str:
    scope = [s.strip() for s in (scopes or "").split(",") if s.strip()]
    session = oauth_session(shop, api_key, api_secret, api_version)
    return session.create_permission_url(redirect_uri=redirect_uri, scope=scope, state=state)


def callback_is_valid(params: Mapping[str, str], api_key: str, api_secret: str) -> bool:
    """HMAC signature plus the one-day timestamp window, as checked by ShopifyAPI."""
    if not api_secret or not params.get("hmac"):
        return False
    shopify.Session.setup(api_key=api_key, secret=api_secret)
    return bool(shopify.Session.validate_params(dict(params)))


def request_token(shop: str, api_key: str, api_secret: str, params: Mapping[str, str],
                  api_version: str = DEFAULT_API_VERSION) -> str:
    """Exchange the callback's single-use code for an offline access token."""
    token = oauth_session(shop, api_key, api_secret, api_version).request_token(dict(params))
    if not token:
        raise RuntimeError("access_token missing from OAuth response")
    log.info("[auth] token issued for %s", shop)
    return token
