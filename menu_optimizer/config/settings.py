"""Runtime settings for the optimizer service."""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()

STAGE = os.getenv("STAGE", "dev")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def _table(name: str) -> str:
    return f"{STAGE}_{name}"


RESTAURANTS_TABLE = _table("restaurants")
MENU_ITEMS_TABLE = _table("menu_items")
REVISION_CANDIDATES_TABLE = _table("revision_candidates")
SUGGESTION_CANDIDATES_TABLE = _table("suggestion_candidates")
ANALYTICS_TABLE = _table("menu_analytics")
DEMOGRAPHIC_SNAPSHOTS_TABLE = _table("demographic_snapshots")
COMPETITOR_DISH_SNAPSHOTS_TABLE = _table("competitor_dish_snapshots")

# Hard ceiling on records per batch write call.
BATCH_WRITE_LIMIT = 25

CANDIDATE_POLL_INTERVAL_SECONDS = float(os.getenv("CANDIDATE_POLL_INTERVAL_SECONDS", "5"))

MARKET_DATA_API_URL = os.getenv("MARKET_DATA_API_URL", "https://hackathon.api.qloo.com")
MARKET_DATA_API_KEY = os.getenv("MARKET_DATA_API_KEY")
MARKET_DATA_TIMEOUT_SECONDS = float(os.getenv("MARKET_DATA_TIMEOUT_SECONDS", "15"))


__all__ = [
    "STAGE",
    "LOG_LEVEL",
    "RESTAURANTS_TABLE",
    "MENU_ITEMS_TABLE",
    "REVISION_CANDIDATES_TABLE",
    "SUGGESTION_CANDIDATES_TABLE",
    "ANALYTICS_TABLE",
    "DEMOGRAPHIC_SNAPSHOTS_TABLE",
    "COMPETITOR_DISH_SNAPSHOTS_TABLE",
    "BATCH_WRITE_LIMIT",
    "CANDIDATE_POLL_INTERVAL_SECONDS",
    "MARKET_DATA_API_URL",
    "MARKET_DATA_API_KEY",
    "MARKET_DATA_TIMEOUT_SECONDS",
]
