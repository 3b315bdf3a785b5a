# services/pages.py: server-rendered admin pages (game list, composer, settings, products)
from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence

from jinja2 import DictLoader, Environment

from services.games import FetchFailed, FetchLoading, FetchResult, FetchSucceeded, Game
from services.products import (MutationFailed, MutationIdle, MutationPending, MutationResult,
                               MutationSucceeded)

APP_TITLE = "Board game loader"

_LAYOUT = """
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{{ title }}</title>
  <link rel="stylesheet" href="{{ static_prefix }}/app.css">
</head>
<body>
  <nav><a href="/">Games</a> | <a href="/products">Products</a> | <a href="/settings">Settings</a></nav>
  <div id="app">
    <h1>{{ title }}</h1>
    {% block content %}{% endblock %}
  </div>
</body>
</html>
""".strip()

_GAME_LIST = """
<ul class="games">
{%- for key, game in rows %}
  <li data-key="{{ key }}">
    <p>{{ game.name }}</p>
    <form method="post" action="{{ action }}">
      <input type="hidden" name="name" value="{{ game.name }}">
      {%- if csrf_token %}
      <input type="hidden" name="csrf_token" value="{{ csrf_token }}">
      {%- endif %}
      <button type="submit">Create product</button>
    </form>
  </li>
{%- endfor %}
</ul>
""".strip()

_INDEX = """
{% extends "layout.html" %}
{% block content %}
{%- if fetch == "loading" %}
    <p class="loading">Loading</p>
{%- elif fetch == "failed" %}
    <p class="error">Failed to fetch games</p>
{%- else %}
    {% include "game_list.html" %}
{%- endif %}
{%- if mutation == "pending" %}
    <p class="status">Creating product {{ mutation_title }}…</p>
{%- elif mutation == "failed" %}
    <p class="status error">Failed to create product {{ mutation_title }}</p>
{%- elif mutation == "succeeded" %}
    <p class="status success">Created product {{ mutation_title }}</p>
{%- endif %}
{% endblock %}
""".strip()

_SETTINGS = """
{% extends "layout.html" %}
{% block content %}
    <p>Nothing to configure yet.</p>
{% endblock %}
""".strip()

_PRODUCTS = """
{% extends "layout.html" %}
{% block content %}
{%- if error %}
    <p class="error">Failed to load products</p>
{%- else %}
    <ul class="products">
    {%- for p in products %}
      <li data-key="{{ p.id }}">{{ p.title }}</li>
    {%- endfor %}
    </ul>
{%- endif %}
{% endblock %}
""".strip()

_ENV = Environment(
    loader=DictLoader({"layout.html": _LAYOUT, "game_list.html": _GAME_LIST, "index.html": _INDEX,
                       "settings.html": _SETTINGS, "products.html": _PRODUCTS}),
    autoescape=True,
)


def row_keys(games: Sequence[Game]) -> List[str]:
    """Key every row by gameId when the whole collection has one, otherwise by name."""
    key: Callable[[Game], str] = (lambda g: g.game_id) if games and all(g.game_id for g in games) \
        else (lambda g: g.name)
    return [key(g) for g in games]


def _list_context(games: Optional[Sequence[Game]], action: str, csrf_token: str = "") -> Dict:
    games = tuple(games or ())
    return {"rows": list(zip(row_keys(games), games)), "action": action, "csrf_token": csrf_token}


def render_game_list(games: Optional[Sequence[Game]] = None, action: str = "/", csrf_token: str = "") -> str:
    return _ENV.get_template("game_list.html").render(**_list_context(games, action, csrf_token))


def _fetch_tag(state: FetchResult) -> str:
    if isinstance(state, FetchLoading):
        return "loading"
    if isinstance(state, FetchFailed):
        return "failed"
    if isinstance(state, FetchSucceeded):
        return "succeeded"
    raise TypeError(f"unknown fetch state: {state!r}")


def _mutation_tag(state: MutationResult) -> str:
    for cls, tag in ((MutationIdle, "idle"), (MutationPending, "pending"),
                     (MutationFailed, "failed"), (MutationSucceeded, "succeeded")):
        if isinstance(state, cls):
            return tag
    raise TypeError(f"unknown mutation state: {state!r}")


def compose_page(fetch: FetchResult, mutation: MutationResult = MutationIdle(), action: str = "/",
                 static_prefix: str = "/static", csrf_token: str = "") -> str:
    """
    Render the games page for one fetch state plus the latest mutation state.

    The list only appears once the fetch succeeded; the mutation status is
    rendered below it regardless of the fetch state.
    """
    ctx = _list_context(fetch.games if isinstance(fetch, FetchSucceeded) else (), action, csrf_token)
    return _ENV.get_template("index.html").render(
        title=APP_TITLE, static_prefix=static_prefix,
        fetch=_fetch_tag(fetch), mutation=_mutation_tag(mutation),
        mutation_title=getattr(mutation, "title", ""), **ctx)


def render_settings_page(static_prefix: str = "/static") -> str:
    return _ENV.get_template("settings.html").render(title="Settings", static_prefix=static_prefix)


def render_products_page(products: Optional[Sequence[Dict[str, str]]] = None, error: bool = False,
                         static_prefix: str = "/static") -> str:
    return _ENV.get_template("products.html").render(
        title="Products", static_prefix=static_prefix, products=products or [], error=error)
