"""
Query intent module.
Derives a structured QueryIntent (type, entities, sentiment, strategy) from a free-text
query using an LLM when one is configured, and a deterministic rule-based parser
otherwise. Entities are only ever taken from text that literally appears in the query.
"""

import json  # parse the LLM reply
import re  # keyword, genre and year patterns
from typing import Any, Dict, List, Optional, Set  # type annotations

from loguru import logger  # console logging
from openai import OpenAI  # LLM client

from .models import IntentEntities, QueryIntent  # structured intent
from .preprocessing import query_tokens  # meaningful query words

INTENT_TYPES = ("search", "recommendation", "comparison", "filter", "chat")
SEARCH_STRATEGIES = ("vector", "filter", "hybrid")
SENTIMENTS = ("positive", "negative", "neutral")

# Words that name a genre (directly or by a common phrasing) -> canonical genre
GENRE_VOCABULARY: Dict[str, str] = {
	"drama": "drama",
	"dramatic": "drama",
	"action": "action",
	"action-packed": "action",
	"comedy": "comedy",
	"funny": "comedy",
	"horror": "horror",
	"scary": "horror",
	"romance": "romance",
	"romantic": "romance",
	"thriller": "thriller",
	"adventure": "adventure",
	"fantasy": "fantasy",
	"sci-fi": "sci-fi",
	"scifi": "sci-fi",
	"science fiction": "sci-fi",
	"mystery": "mystery",
	"animation": "animation",
	"animated": "animation",
	"biography": "biography",
	"western": "western",
	"family": "family",
	"war": "war",
	"music": "music",
	"musical": "musical",
	"sport": "sport",
	"crime": "crime",
	"superhero": "superhero",
	"history": "history",
	"historical": "history",
}

# Catalog spelling of canonical genres, used when intent genres become filters
GENRE_LABELS: Dict[str, str] = {"sci-fi": "Sci-Fi"}

# Synonyms allowed in an expanded query, keyed by a word of the original query
SYNONYM_EXPANSIONS: Dict[str, List[str]] = {
	"funny": ["comedy", "humorous"],
	"comedy": ["funny", "humorous"],
	"scary": ["horror", "frightening"],
	"horror": ["scary", "frightening"],
	"romantic": ["romance", "love"],
	"romance": ["romantic", "love"],
	"action": ["exciting"],
	"action-packed": ["action", "exciting"],
	"dramatic": ["drama", "emotional"],
	"drama": ["dramatic", "emotional"],
	"animated": ["animation", "cartoon"],
	"sci-fi": ["science", "fiction", "futuristic"],
	"scifi": ["sci-fi", "science", "fiction"],
	"space": ["sci-fi", "cosmic"],
	"historical": ["history", "period"],
	"sad": ["emotional", "tearjerker"],
	"thriller": ["suspense", "tense"],
}

_RECOMMENDATION = re.compile(r"\b(recommend\w*|suggest\w*|what should)\b")
_COMPARISON = re.compile(r"\b(vs\.?|versus|compar\w*|better)(?!\w)")
_YEAR = re.compile(r"\b(?:19|20)\d{2}\b")
_GENRE_PATTERNS = [
	(re.compile(r"(?<![\w-])" + re.escape(term) + r"(?![\w-])"), canonical)
	for term, canonical in sorted(GENRE_VOCABULARY.items(), key=lambda kv: -len(kv[0]))
]
_EXPANSION_WORDS = re.compile(r"[\w-]+")

INTENT_PROMPT = """Analyze this movie search query and extract ONLY information that is explicitly mentioned. Do not guess, assume, or invent anything.

Query: "{query}"

Return ONLY a JSON object with exactly this structure:
{{
  "type": "search|recommendation|comparison|filter|chat",
  "confidence": 0.0,
  "entities": {{"genres": [], "actors": [], "directors": [], "years": [], "keywords": []}},
  "sentiment": "positive|negative|neutral",
  "expandedQuery": "",
  "searchStrategy": "vector|filter|hybrid"
}}

Rules:
1. genres: only when one of these words appears in the query: {genres}. "funny movies" gives ["comedy"]. Otherwise [].
2. actors / directors: only names written in the query. Otherwise [].
3. years: only four-digit years written in the query. "recent" or "old" give [].
4. keywords: only descriptive words written in the query. No synonyms.
5. type: "recommendation" for recommend/suggest/what should I watch, "comparison" for vs/versus/compare/better than, "filter" for criteria such as genres or years, "search" for a specific movie, "chat" for small talk.
6. sentiment: "positive" for good/best/amazing/love, "negative" for bad/worst/hate/avoid, otherwise "neutral".
7. expandedQuery: the query plus synonyms of words that are in it ("funny" -> "funny comedy humorous"). Never add unrelated words.
8. searchStrategy: "vector" for descriptive queries, "filter" for explicit criteria, "hybrid" for both.
9. confidence: 0.0-1.0, how clear the intent is.

Examples:
- "funny movies" -> genres ["comedy"], actors [], directors [], years []
- "Tom Cruise action films" -> genres ["action"], actors ["Tom Cruise"], directors [], years []
- "movies from 2020" -> genres [], actors [], directors [], years [2020]

Return only the JSON."""


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
	"""Return the first well-formed JSON object embedded in `text`, if any."""
	if not text:
		return None
	decoder = json.JSONDecoder()
	start = text.find("{")
	while start != -1:
		try:
			value, _end = decoder.raw_decode(text, start)
		except json.JSONDecodeError:
			start = text.find("{", start + 1)
			continue
		if isinstance(value, dict):
			return value
		start = text.find("{", start + 1)
	return None


def extract_genres(query: str) -> List[str]:
	"""Canonical genres whose vocabulary words appear in the query, in order of appearance."""
	q = (query or "").lower()
	hits = []
	for pattern, canonical in _GENRE_PATTERNS:
		for m in pattern.finditer(q):
			hits.append((m.start(), canonical))
	seen: Set[str] = set()
	genres = []
	for _pos, canonical in sorted(hits):
		if canonical not in seen:
			seen.add(canonical)
			genres.append(canonical)
	return genres


def extract_years(query: str) -> List[int]:
	"""Four-digit years written in the query, in order, without duplicates."""
	years: List[int] = []
	for m in _YEAR.finditer(query or ""):
		year = int(m.group(0))
		if year not in years:
			years.append(year)
	return years


def genre_label(canonical: str) -> str:
	"""Catalog label for a canonical genre (e.g. "comedy" -> "Comedy")."""
	return GENRE_LABELS.get(canonical, canonical.title())


class QueryIntentClassifier:
	"""
	Classifies queries with an optional LLM client (OpenAI chat completions API).
	Any LLM failure, missing client or malformed reply falls back to rules.
	"""

	def __init__(self, client: Any = None, model: str = "gpt-4o-mini"):
		self.client = client
		self.model = model
		logger.debug(f"[Intent] Classifier ready | llm={'on' if client is not None else 'off'} | model={model}")

	@classmethod
	def from_api_key(cls, api_key: Optional[str], model: str = "gpt-4o-mini") -> "QueryIntentClassifier":
		"""Build a classifier, creating an OpenAI client only when a key is present."""
		if not api_key:
			return cls(client=None, model=model)
		return cls(client=OpenAI(api_key=api_key), model=model)

	def classify(self, query: str) -> QueryIntent:
		"""Main entry: produce a QueryIntent from a raw string."""
		query = query or ""
		if self.client is None:
			return self.fallback_intent(query)

		try:
			reply = self._ask_llm(query)
		except Exception as e:
			logger.warning(f"[Intent] LLM call failed, using rule-based fallback: {e}")
			return self.fallback_intent(query)

		try:
			intent = self.parse_llm_reply(reply, query)
		except Exception as e:
			logger.warning(f"[Intent] LLM reply failed validation: {e}")
			intent = None
		if intent is None:
			logger.warning("[Intent] LLM reply unusable, using rule-based fallback")
			return self.fallback_intent(query)
		logger.debug(f"[Intent] LLM intent | type={intent.type} | strategy={intent.search_strategy}")
		return intent

	def _ask_llm(self, query: str) -> str:
		prompt = INTENT_PROMPT.format(query=query.replace('"', "'"), genres=", ".join(sorted(set(GENRE_VOCABULARY.values()))))
		response = self.client.chat.completions.create(
			model=self.model,
			messages=[
				{"role": "system", "content": "You extract structured search intent from movie queries and answer with JSON only."},
				{"role": "user", "content": prompt},
			],
			temperature=0,
		)
		return response.choices[0].message.content or ""

	def parse_llm_reply(self, reply: str, query: str) -> Optional[QueryIntent]:
		"""
		Validate an LLM reply against the query.
		Returns None when the reply lacks a valid type or search strategy.
		"""
		data = extract_json_object(reply)
		if data is None:
			return None
		intent_type = data.get("type")
		strategy = data.get("searchStrategy")
		if intent_type not in INTENT_TYPES or strategy not in SEARCH_STRATEGIES:
			return None

		raw_entities = data.get("entities")
		if not isinstance(raw_entities, dict):
			raw_entities = {}

		sentiment = data.get("sentiment")
		if sentiment not in SENTIMENTS:
			sentiment = "neutral"

		try:
			confidence = float(data.get("confidence", 0.5))
		except (TypeError, ValueError):
			confidence = 0.5
		confidence = max(0.0, min(1.0, confidence))

		expanded = data.get("expandedQuery")
		expanded = self._restrict_expansion(expanded if isinstance(expanded, str) else "", query)

		return QueryIntent(
			type=intent_type,
			confidence=confidence,
			entities=self._grounded_entities(raw_entities, query),
			sentiment=sentiment,
			expanded_query=expanded,
			search_strategy=strategy,
		)

	def _grounded_entities(self, raw: Dict[str, Any], query: str) -> IntentEntities:
		"""Keep only entities that can be traced back to the query text."""
		q = query.lower()
		literal_genres = extract_genres(query)
		genres = []
		for g in _string_list(raw.get("genres")):
			canonical = GENRE_VOCABULARY.get(g.lower().strip())
			if canonical in literal_genres and canonical not in genres:
				genres.append(canonical)

		literal_years = extract_years(query)
		years = []
		raw_years = raw.get("years")
		for y in raw_years if isinstance(raw_years, list) else []:
			if isinstance(y, bool):
				continue
			try:
				year = int(y)
			except (TypeError, ValueError):
				continue
			if year in literal_years and year not in years:
				years.append(year)

		def _present(values: Any) -> List[str]:
			kept = []
			for v in _string_list(values):
				name = v.strip()
				if name and name.lower() in q and name not in kept:
					kept.append(name)
			return kept

		dropped = [k for k in ("actors", "directors") if len(_string_list(raw.get(k))) != len(_present(raw.get(k)))]
		if dropped:
			logger.warning(f"[Intent] Dropped {', '.join(dropped)} not present in query '{query}'")

		return IntentEntities(
			genres=genres,
			actors=_present(raw.get("actors")),
			directors=_present(raw.get("directors")),
			years=years,
			keywords=_present(raw.get("keywords")),
		)

	def _restrict_expansion(self, expanded: str, query: str) -> str:
		"""Drop expansion words that are neither in the query nor synonyms of its words."""
		allowed = self._allowed_expansion_words(query)
		words = [w for w in _EXPANSION_WORDS.findall(expanded.lower()) if w in allowed]
		if not words:
			return self._expand(query)
		return " ".join(dict.fromkeys(words))

	def _allowed_expansion_words(self, query: str) -> Set[str]:
		words = set(_EXPANSION_WORDS.findall(query.lower()))
		allowed = set(words)
		for w in words:
			allowed.update(SYNONYM_EXPANSIONS.get(w, []))
			if w in GENRE_VOCABULARY:
				allowed.add(GENRE_VOCABULARY[w])
		for canonical in extract_genres(query):
			allowed.update(canonical.split())
		return allowed

	def _expand(self, query: str) -> str:
		"""Query followed by table synonyms of its words."""
		words = _EXPANSION_WORDS.findall(query.lower())
		extra = [s for w in words for s in SYNONYM_EXPANSIONS.get(w, []) if s not in words]
		return " ".join([query.strip()] + list(dict.fromkeys(extra))).strip()

	def fallback_intent(self, query: str) -> QueryIntent:
		"""Rule-based classification; entities come only from literal matches."""
		q = query.lower()
		genres = extract_genres(query)
		years = extract_years(query)
		has_criteria = bool(genres or years)

		if _RECOMMENDATION.search(q):
			intent_type = "recommendation"
		elif _COMPARISON.search(q):
			intent_type = "comparison"
		elif has_criteria:
			intent_type = "filter"
		else:
			intent_type = "search"

		if has_criteria:
			strategy = "filter"
		elif len(query.split()) > 6:
			strategy = "hybrid"
		else:
			strategy = "vector"

		# whole genre terms go before tokenizing; "sci-fi" must not leave "sci"
		remainder = q
		for pattern, _canonical in _GENRE_PATTERNS:
			remainder = pattern.sub(" ", remainder)
		year_terms = {str(y) for y in years}
		keywords = [t for t in query_tokens(remainder) if t not in year_terms]

		logger.debug(f"[Intent] Fallback intent | type={intent_type} | strategy={strategy} | genres={genres} | years={years}")
		return QueryIntent(
			type=intent_type,
			confidence=0.6,
			entities=IntentEntities(genres=genres, years=years, keywords=list(dict.fromkeys(keywords))),
			sentiment="neutral",
			expanded_query=self._expand(query),
			search_strategy=strategy,
		)


def _string_list(value: Any) -> List[str]:
	if not isinstance(value, list):
		return []
	return [v for v in value if isinstance(v, str)]
