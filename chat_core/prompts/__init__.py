"""System prompt loading.

Prompts are plain markdown files under ``prompts/<locale>/<name>.md``; they
become the content of a ChatMessage(role="system").
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_prompt(name: str, locale: str = "en") -> str:
    """Load the prompt ``name`` for ``locale``, stripped of surrounding blanks."""

    fname = PROMPTS_DIR / locale / f"{name}.md"
    return fname.read_text(encoding="utf-8").strip()
