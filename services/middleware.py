# services/middleware.py: request interceptors run ahead of every route (auth gate, graphql proxy)
# plus the OAuth install/callback handlers and the form CSRF token.
# Each interceptor returns None to pass the request on, or a response to short-circuit it.
from __future__ import annotations

import secrets
import logging
from typing import Callable, Iterable, Optional, Tuple

import requests
from flask import Response, current_app, jsonify, redirect, request, session

from services import admin

log = logging.getLogger(__name__)

Interceptor = Callable[[], Optional[object]]

OPEN_ENDPOINTS = {"static", "health", "auth", "auth_callback"}
AUTH_PATH = "/auth"
CALLBACK_PATH = "/auth/callback"
GRAPHQL_PATH = "/graphql"


def run_pipeline(interceptors: Iterable[Interceptor]):
    for fn in interceptors:
        rv = fn()
        if rv is not None:
            return rv
    return None


# ─────────────────────────────────────────────────────────────
# Credentials
# ─────────────────────────────────────────────────────────────
def request_auth_token() -> Optional[str]:
    """Caller token from `Authorization: Bearer`, `X-Auth` or `?auth=`, in that order."""
    bearer = (request.headers.get("Authorization") or "").strip()
    token = None
    if bearer.lower().startswith("bearer "):
        token = bearer.split(" ", 1)[1].strip()
    return token or request.headers.get("X-Auth") or request.args.get("auth")


def store_token_matches() -> bool:
    expected = current_app.config.get("APP_AUTH_TOKEN") or ""
    given = request_auth_token() or ""
    if not expected or not given:
        return False
    return secrets.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


def current_credentials() -> Optional[Tuple[str, str]]:
    """
    (shop, access_token) for this caller.

    An OAuth session wins. The single-store admin token is only lent to a
    caller that presented APP_AUTH_TOKEN, now or earlier in its session.
    """
    shop, token = session.get("shop"), session.get("access_token")
    if shop and token:
        return shop, token
    cfg = current_app.config
    store, admin_token = cfg.get("SHOPIFY_STORE"), cfg.get("SHOPIFY_ADMIN_TOKEN")
    if store and admin_token and (session.get("store_auth") or store_token_matches()):
        return admin.shop_domain(store), admin_token
    return None


def current_sender() -> Optional[admin.GraphQLSend]:
    creds = current_credentials()
    if not creds:
        return None
    return admin.graphql_sender(creds[0], creds[1], current_app.config["SHOPIFY_API_VERSION"])


# ─────────────────────────────────────────────────────────────
# CSRF
# ─────────────────────────────────────────────────────────────
def csrf_token() -> str:
    token = session.get("csrf_token")
    if not token:
        token = session["csrf_token"] = secrets.token_urlsafe(24)
    return token


def csrf_ok() -> bool:
    expected = session.get("csrf_token") or ""
    given = request.form.get("csrf_token") or ""
    if not expected or not given:
        return False
    return secrets.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


# ─────────────────────────────────────────────────────────────
# OAuth install / callback
# ─────────────────────────────────────────────────────────────
def _redirect_uri() -> str:
    base = (current_app.config.get("SHOPIFY_APP_URL") or request.host_url).rstrip("/")
    return f"{base}{CALLBACK_PATH}"


def begin_auth():
    shop = request.args.get("shop", "")
    if not admin.valid_shop_domain(shop):
        return jsonify({"ok": False, "error": "invalid_shop"}), 400
    cfg = current_app.config
    if not cfg.get("SHOPIFY_API_KEY"):
        return jsonify({"ok": False, "error": "missing SHOPIFY_API_KEY"}), 500
    state = secrets.token_urlsafe(16)
    session["oauth_state"] = state
    log.info("[auth] begin for %s", shop)
    url = admin.authorize_url(shop, cfg["SHOPIFY_API_KEY"], cfg.get("SHOPIFY_API_SECRET") or "",
                              cfg["SHOPIFY_SCOPES"], _redirect_uri(), state, cfg["SHOPIFY_API_VERSION"])
    return redirect(url)


def finish_auth():
    params = request.args.to_dict()
    shop = params.get("shop", "")
    cfg = current_app.config
    expected_state = session.pop("oauth_state", None)
    if not admin.valid_shop_domain(shop):
        return jsonify({"ok": False, "error": "invalid_shop"}), 400
    if not expected_state or params.get("state") != expected_state:
        log.warning("[auth] state mismatch for %s", shop)
        return jsonify({"ok": False, "error": "invalid_state"}), 403
    if not params.get("code"):
        return jsonify({"ok": False, "error": "missing_code"}), 400
    if not admin.callback_is_valid(params, cfg.get("SHOPIFY_API_KEY") or "", cfg.get("SHOPIFY_API_SECRET") or ""):
        log.warning("[auth] hmac mismatch for %s", shop)
        return jsonify({"ok": False, "error": "invalid_hmac"}), 403
    try:
        token = admin.request_token(shop, cfg["SHOPIFY_API_KEY"], cfg["SHOPIFY_API_SECRET"], params,
                                    cfg["SHOPIFY_API_VERSION"])
    except Exception as e:
        log.exception("[auth] token exchange failed for %s", shop)
        return jsonify({"ok": False, "error": str(e)}), 502
    session["shop"] = shop
    session["access_token"] = token
    return redirect(f"/?shop={shop}")


# ─────────────────────────────────────────────────────────────
# Interceptors
# ─────────────────────────────────────────────────────────────
def shopify_auth():
    if request.endpoint in OPEN_ENDPOINTS:
        return None
    if store_token_matches():
        session["store_auth"] = True
    if current_credentials():
        return None
    shop = request.args.get("shop")
    if admin.valid_shop_domain(shop):
        return redirect(f"{AUTH_PATH}?shop={shop}")
    return jsonify({"ok": False, "error": "unauthorized"}), 401


def graphql_proxy():
    if request.path != GRAPHQL_PATH:
        return None
    if request.method != "POST":
        return jsonify({"ok": False, "error": "method_not_allowed"}), 405
    creds = current_credentials()
    if not creds:
        return jsonify({"ok": False, "error": "unauthorized"}), 401
    # cross-site forms cannot send application/json without a CORS preflight
    if not request.is_json:
        return jsonify({"ok": False, "error": "unsupported_media_type"}), 415
    try:
        r = admin.proxy_graphql(creds[0], creds[1], request.get_data(), current_app.config["SHOPIFY_API_VERSION"])
    except requests.RequestException as e:
        log.exception("[proxy] graphql forward failed")
        return jsonify({"ok": False, "error": str(e)}), 502
    return Response(r.content, status=r.status_code,
                    content_type=r.headers.get("Content-Type", "application/json"))
