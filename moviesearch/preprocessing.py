"""
Query preprocessing.
Cleans free text before it is embedded or turned into keyword conditions.
"""

import re  # punctuation and whitespace handling
from typing import FrozenSet, List  # type hints

# Words that carry no meaning for ranking movies
STOP_WORDS: FrozenSet[str] = frozenset({
	"a", "about", "all", "also", "an", "and", "any", "are", "as", "at",
	"be", "been", "but", "by", "can", "could", "did", "do", "does", "for",
	"from", "had", "has", "have", "her", "his", "how", "in", "into", "is",
	"it", "its", "just", "like", "me", "more", "most", "movie", "movies",
	"film", "films", "my", "no", "not", "of", "on", "or", "our", "out",
	"show", "shows", "so", "some", "that", "the", "their", "them", "then",
	"there", "these", "they", "this", "those", "to", "up", "very", "was",
	"we", "were", "what", "when", "where", "which", "who", "why", "will",
	"with", "would", "you", "your", "find", "want", "watch", "please",
})

_PUNCTUATION = re.compile(r"[^\w\s]|_")  # anything that is not a word character or space
_WHITESPACE = re.compile(r"\s+")


def query_tokens(text: str) -> List[str]:
	"""Return the meaningful tokens of `text`, in order."""
	if not text:
		return []
	cleaned = _PUNCTUATION.sub(" ", text.lower())
	cleaned = _WHITESPACE.sub(" ", cleaned).strip()
	return [t for t in cleaned.split(" ") if len(t) > 2 and t not in STOP_WORDS]


def preprocess_query(text: str) -> str:
	"""
	Lowercase, strip punctuation, collapse whitespace, drop stop words and
	tokens of two characters or fewer.
	Falls back to the lowercased input when nothing survives, so an empty
	string is never sent downstream.
	"""
	tokens = query_tokens(text)
	if not tokens:
		return (text or "").strip().lower()
	return " ".join(tokens)
