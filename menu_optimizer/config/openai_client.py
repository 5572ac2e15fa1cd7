"""OpenAI client configuration for menu generation and optimization."""

import os
from functools import lru_cache

from dotenv import load_dotenv
from openai import OpenAI

load_dotenv()

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPTIMIZER_MODEL = os.getenv("OPTIMIZER_MODEL", "gpt-4.1-mini")
MENU_VISION_MODEL = os.getenv("MENU_VISION_MODEL", "gpt-4o-mini")


@lru_cache(maxsize=1)
def get_openai_client() -> OpenAI:
    """Build the OpenAI client on first use so imports stay side-effect free."""

    if not OPENAI_API_KEY:
        raise RuntimeError("OPENAI_API_KEY manquante dans le fichier .env")
    return OpenAI(api_key=OPENAI_API_KEY)


__all__ = ["get_openai_client", "OPTIMIZER_MODEL", "MENU_VISION_MODEL"]
