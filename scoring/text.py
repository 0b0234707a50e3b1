"""
Text Analysis Primitives
-------------------------
Tokenization, stopword filtering, n-gram combos and readability helpers
shared by every scoring module.

  tokenize_for_aso("Pimsleur | Language Learning") -> ["pimsleur", "language", "learning"]
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set


# ─── Stopwords ───────────────────────────────────────────────────────────────

ENGLISH_STOPWORDS = frozenset({
    "a", "about", "above", "after", "again", "against", "all", "am", "an", "and",
    "any", "are", "as", "at", "be", "because", "been", "before", "being", "below",
    "between", "both", "but", "by", "can", "could", "did", "do", "does", "doing",
    "down", "during", "each", "few", "for", "from", "further", "had", "has", "have",
    "having", "he", "her", "here", "hers", "herself", "him", "himself", "his", "how",
    "i", "if", "in", "into", "is", "it", "its", "itself", "just", "me", "more",
    "most", "my", "myself", "no", "nor", "not", "now", "of", "off", "on", "once",
    "only", "or", "other", "our", "ours", "ourselves", "out", "over", "own", "same",
    "she", "should", "so", "some", "such", "than", "that", "the", "their", "theirs",
    "them", "themselves", "then", "there", "these", "they", "this", "those",
    "through", "to", "too", "under", "until", "up", "very", "was", "we", "were",
    "what", "when", "where", "which", "while", "who", "whom", "why", "will", "with",
    "would", "you", "your", "yours", "yourself", "yourselves", "also", "get", "got",
    "may", "might", "must", "shall", "via", "per",
})

# Store/platform words that carry no ranking value in a title or subtitle.
ASO_STOPWORDS_EXTRA = frozenset({
    "app", "apps", "application", "applications", "iphone", "ipad", "ios", "android",
    "mobile", "phone", "tablet", "free", "best", "top", "new", "latest", "official",
    "version", "update", "updated", "pro", "plus", "lite", "premium", "hd", "edition",
    "ultimate", "amazing", "awesome", "great", "good", "cool", "perfect", "super",
    "number", "one",
})

ASO_STOPWORDS: frozenset = ENGLISH_STOPWORDS | ASO_STOPWORDS_EXTRA

MIN_KEYWORD_LENGTH = 3

_APOSTROPHES = re.compile(r"[’'`´]")
# any letter or digit in any script is a word character; underscores break
_NON_WORD = re.compile(r"[^\w\s]+|_+")
_WHITESPACE = re.compile(r"\s+")


# ─── Data Structures ─────────────────────────────────────────────────────────


@dataclass
class FilterResult:
    keywords: List[str]
    ignored: List[str]
    noise_ratio: float


@dataclass
class TextAnalysis:
    all_tokens: List[str]
    keywords: List[str]
    ignored: List[str] = field(default_factory=list)
    noise_ratio: float = 0.0


# ─── Tokenization ────────────────────────────────────────────────────────────


def tokenize_for_aso(text: Optional[str]) -> List[str]:
    """
    Lowercase, drop apostrophes ("don't" -> "dont") and treat every other
    punctuation mark, including visual separators like | – — &, as a break.
    """
    if not text:
        return []
    lowered = _APOSTROPHES.sub("", str(text).lower())
    cleaned = _NON_WORD.sub(" ", lowered)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    return cleaned.split(" ") if cleaned else []


def get_stopwords(extra: Optional[Iterable[str]] = None) -> Set[str]:
    """Return a fresh stopword set, optionally extended with ruleset overrides."""
    stopwords = set(ASO_STOPWORDS)
    if extra:
        stopwords.update(w.strip().lower() for w in extra if w and w.strip())
    return stopwords


def filter_stopwords(tokens: List[str], stopwords: Optional[Set[str]] = None) -> FilterResult:
    stopwords = ASO_STOPWORDS if stopwords is None else stopwords
    keywords, ignored = [], []
    for token in tokens:
        if token in stopwords or len(token) < MIN_KEYWORD_LENGTH:
            ignored.append(token)
        else:
            keywords.append(token)
    noise = len(ignored) / len(tokens) if tokens else 0.0
    return FilterResult(keywords=keywords, ignored=ignored, noise_ratio=noise)


def analyze_text(text: Optional[str], stopwords: Optional[Set[str]] = None) -> TextAnalysis:
    tokens = tokenize_for_aso(text)
    filtered = filter_stopwords(tokens, stopwords)
    return TextAnalysis(
        all_tokens=tokens,
        keywords=filtered.keywords,
        ignored=filtered.ignored,
        noise_ratio=filtered.noise_ratio,
    )


# ─── Combos ──────────────────────────────────────────────────────────────────


def generate_ngrams(tokens: List[str], min_n: int = 2, max_n: int = 4) -> List[str]:
    """Contiguous n-grams, shortest first, in reading order."""
    ngrams = []
    for n in range(min_n, max_n + 1):
        for i in range(len(tokens) - n + 1):
            ngrams.append(" ".join(tokens[i:i + n]))
    return ngrams


def meaningful_combos(
    tokens: List[str],
    stopwords: Optional[Set[str]] = None,
    min_n: int = 2,
    max_n: int = 4,
) -> List[str]:
    """
    Unique n-grams that neither start nor end with a stopword and contain
    no token shorter than MIN_KEYWORD_LENGTH.
    """
    stopwords = ASO_STOPWORDS if stopwords is None else stopwords
    seen, combos = set(), []
    for n in range(min_n, max_n + 1):
        for i in range(len(tokens) - n + 1):
            window = tokens[i:i + n]
            if window[0] in stopwords or window[-1] in stopwords:
                continue
            if any(len(t) < MIN_KEYWORD_LENGTH for t in window):
                continue
            combo = " ".join(window)
            if combo not in seen:
                seen.add(combo)
                combos.append(combo)
    return combos


# ─── Readability ─────────────────────────────────────────────────────────────


def count_syllables(word: str) -> int:
    if not word:
        return 0
    word = re.sub(r"[^a-z]", "", word.lower())
    if len(word) <= 3:
        return 1

    count = 0
    previous_was_vowel = False
    for ch in word:
        is_vowel = ch in "aeiouy"
        if is_vowel and not previous_was_vowel:
            count += 1
        previous_was_vowel = is_vowel

    # silent trailing 'e'
    if word.endswith("e") and count > 1:
        count -= 1
    return max(1, count)


def flesch_reading_ease(text: Optional[str]) -> Optional[int]:
    """Flesch Reading Ease clamped to 0-100, None when there is nothing to read."""
    if not text:
        return None
    sentences = [s for s in re.split(r"[.!?]+", text) if s.strip()]
    words = [w for w in text.split() if w]
    if not sentences or not words:
        return None

    syllables = sum(count_syllables(w) for w in words)
    words_per_sentence = len(words) / len(sentences)
    syllables_per_word = syllables / len(words)
    ease = 206.835 - 1.015 * words_per_sentence - 84.6 * syllables_per_word
    return int(max(0, min(100, round(ease))))


def readability_level(score: int) -> str:
    if score >= 80:
        return "Very easy"
    if score >= 60:
        return "Easy"
    if score >= 40:
        return "Moderate"
    return "Difficult"
