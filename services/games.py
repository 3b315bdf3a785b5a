# services/games.py: board game collection read (fetch once per page render)
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

import requests

from services.client import http

log = logging.getLogger(__name__)

GAMES_URL = "https://boardgameslist.herokuapp.com"


@dataclass(frozen=True)
class Game:
    name: str
    game_id: Optional[str] = None

    @classmethod
    def from_dict(cls, d: dict) -> Optional["Game"]:
        name = d.get("name") if isinstance(d, dict) else None
        if not isinstance(name, str):
            return None
        gid = d.get("gameId")
        return cls(name=name, game_id=None if gid is None else str(gid))


GameCollection = Tuple[Game, ...]


@dataclass(frozen=True)
class FetchLoading:
    pass


@dataclass(frozen=True)
class FetchFailed:
    reason: str


@dataclass(frozen=True)
class FetchSucceeded:
    games: GameCollection = ()


FetchResult = Union[FetchLoading, FetchFailed, FetchSucceeded]


def parse_collection(payload: Any) -> GameCollection:
    """Accepts a JSON list, or {"games": [...]} / {"items": [...]}. Raises ValueError otherwise."""
    if isinstance(payload, dict):
        for k in ("games", "items"):
            if isinstance(payload.get(k), list):
                payload = payload[k]
                break
    if not isinstance(payload, list):
        raise ValueError(f"unexpected games payload: {type(payload).__name__}")
    games: List[Game] = []
    for i, item in enumerate(payload):
        g = Game.from_dict(item)
        if g is None:
            log.warning("[games] skip entry #%d without a name", i)
            continue
        games.append(g)
    return tuple(games)


class GameFetcher:
    """One outbound read per instance; the settled state never goes back to loading."""

    def __init__(self, url: str = GAMES_URL):
        self.url = url
        self.state: FetchResult = FetchLoading()

    def load(self) -> FetchResult:
        if not isinstance(self.state, FetchLoading):
            return self.state
        try:
            r = http("GET", self.url, headers={"Accept": "application/json"})
            games = parse_collection(r.json())
        except requests.RequestException as e:
            log.error("[games] fetch failed: %s", e)
            self.state = FetchFailed(reason=str(e))
        except ValueError as e:
            log.error("[games] bad payload from %s: %s", self.url, e)
            self.state = FetchFailed(reason=str(e))
        else:
            log.info("[games] fetched=%d", len(games))
            self.state = FetchSucceeded(games=games)
        return self.state
