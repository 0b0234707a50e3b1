"""
Token relevance levels (0-3) used to weight keywords and classify combos.

  0 = noise (best, free, 2024)
  1 = neutral
  2 = domain noun (lessons, budget, workout)
  3 = core intent (learn, spanish, invest)
"""

import re
from typing import Dict, Optional

NOISE_TOKENS = frozenset({
    "best", "top", "great", "good", "new", "latest", "free", "premium", "pro",
    "plus", "lite", "one", "two", "three", "app", "apps", "official",
})

LANGUAGE_TOKENS = frozenset({
    "english", "spanish", "french", "german", "italian", "chinese", "japanese",
    "korean", "portuguese", "russian", "arabic", "hindi", "dutch", "turkish",
    "greek", "swedish", "polish", "mandarin", "hebrew", "vietnamese",
})

CORE_VERBS = frozenset({
    "learn", "speak", "master", "practice", "study", "translate", "invest",
    "save", "budget", "track", "earn", "meet", "date", "train", "meditate",
    "plan", "organize", "stream", "watch", "play", "edit", "scan", "trade",
})

DOMAIN_NOUNS = frozenset({
    "language", "languages", "lessons", "lesson", "course", "courses", "vocabulary",
    "grammar", "pronunciation", "conversation", "fluency", "flashcards", "quiz",
    "money", "bank", "banking", "stocks", "crypto", "budget", "savings", "finance",
    "rewards", "cash", "gift", "cards", "games", "workout", "fitness", "health",
    "sleep", "meditation", "habit", "tasks", "notes", "calendar", "planner",
    "dating", "singles", "match", "chat", "video", "music", "movies", "photo",
    "editor", "scanner", "recipes", "travel", "maps", "weather", "news",
    "learning", "training", "tracker",
})

_DIGITS = re.compile(r"^\d+$")


def get_token_relevance(token: str, overrides: Optional[Dict[str, int]] = None) -> int:
    """Relevance 0-3 for a single lowercase token; ruleset overrides win."""
    token = (token or "").lower()
    if overrides and token in overrides:
        return max(0, min(3, int(overrides[token])))

    if not token or token in NOISE_TOKENS or _DIGITS.match(token):
        return 0
    if token in LANGUAGE_TOKENS or token in CORE_VERBS:
        return 3
    if token in DOMAIN_NOUNS:
        return 2
    return 1
