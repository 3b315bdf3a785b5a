# services/products.py: productCreate mutation + store product listing
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Union

import requests

from services.client import retry
from services.admin import GraphQLSend

log = logging.getLogger(__name__)

BOARD_GAME_PRODUCT_TYPE = "board game"

CREATE_PRODUCT_MUTATION = """
mutation CreateProduct($product: ProductInput!) {
  productCreate(input: $product) { product { id title } }
}
""".strip()

LIST_PRODUCTS_QUERY = """
query ListProducts($first: Int!) {
  products(first: $first) { edges { node { id title } } }
}
""".strip()


@dataclass(frozen=True)
class ProductInput:
    title: str
    product_type: str = BOARD_GAME_PRODUCT_TYPE

    @classmethod
    def for_game(cls, name: str) -> "ProductInput":
        return cls(title=name)

    def as_variables(self) -> Dict[str, Any]:
        return {"product": {"title": self.title, "productType": self.product_type}}


@dataclass(frozen=True)
class MutationIdle:
    pass


@dataclass(frozen=True)
class MutationPending:
    title: str


@dataclass(frozen=True)
class MutationFailed:
    title: str
    reason: str


@dataclass(frozen=True)
class MutationSucceeded:
    product_id: str
    title: str


MutationResult = Union[MutationIdle, MutationPending, MutationFailed, MutationSucceeded]


def _graphql_errors(body: Any) -> List[str]:
    """Top-level `errors` as messages; Shopify sends either a list of objects or a bare string."""
    if not isinstance(body, dict):
        return ["unexpected response body"]
    errors = body.get("errors") or []
    if isinstance(errors, (str, dict)):
        errors = [errors]
    out = []
    for e in errors:
        if isinstance(e, dict):
            out.append(str(e.get("message") or e))
        else:
            out.append(str(e))
    return out


class ProductMutation:
    """
    Each call issues exactly one productCreate write.
    `state` tracks the latest-triggered call only; an older call that resolves
    later returns its own result without touching `state`.
    """

    def __init__(self, send: GraphQLSend):
        self._send = send
        self._seq = 0
        self.state: MutationResult = MutationIdle()

    def __call__(self, product: ProductInput) -> MutationResult:
        self._seq += 1
        ticket = self._seq
        self.state = MutationPending(title=product.title)
        result = self._run(product)
        if ticket == self._seq:
            self.state = result
        return result

    def _run(self, product: ProductInput) -> MutationResult:
        try:
            body = self._send(CREATE_PRODUCT_MUTATION, product.as_variables()) or {}
        except requests.RequestException as e:
            log.error("[product] create %r failed: %s", product.title, e)
            return MutationFailed(title=product.title, reason=str(e))
        except ValueError as e:
            log.error("[product] create %r returned a non-JSON body: %s", product.title, e)
            return MutationFailed(title=product.title, reason="invalid response")

        errs = _graphql_errors(body)
        if errs:
            log.error("[product] create %r graphql errors: %s", product.title, errs)
            return MutationFailed(title=product.title, reason="; ".join(errs))
        created = (((body.get("data") or {}).get("productCreate") or {}).get("product")) or {}
        if not created.get("id"):
            log.error("[product] create %r returned no product", product.title)
            return MutationFailed(title=product.title, reason="no product in response")

        log.info("[product] created %s (%s)", created.get("title"), created.get("id"))
        return MutationSucceeded(product_id=created["id"], title=created.get("title") or product.title)


@retry()
def list_products(send: GraphQLSend, first: int = 10) -> List[Dict[str, str]]:
    body = send(LIST_PRODUCTS_QUERY, {"first": max(1, min(250, int(first)))}) or {}
    errs = _graphql_errors(body)
    if errs:
        raise RuntimeError("; ".join(errs))
    edges = (((body.get("data") or {}).get("products") or {}).get("edges")) or []
    return [{"id": e["node"]["id"], "title": e["node"].get("title") or ""} for e in edges if e.get("node")]
