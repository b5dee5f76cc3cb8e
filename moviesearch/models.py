"""
Data models for the movie search service.
Defines the core data structures used throughout the system.
"""

# Import dataclass to define simple "record-like" classes without boilerplate
from dataclasses import dataclass, field  # auto-generates __init__, __repr__, etc.
# Import typing helpers for precise and self-documenting types
from typing import Any, Dict, List, Optional  # payload dicts, lists and optional values


# Payload keys that are lists of flat string tags
_LIST_FIELDS = ("genres", "studios", "countries", "languages")


@dataclass
class Movie:
	"""
	Represents a single movie as stored in the vector collection payload.
	Records are written once during seeding and read-only afterwards.
	"""
	id: str  # unique identifier of the movie
	title: str  # display title
	original_title: Optional[str] = None  # title in the original language
	description: str = ""  # synopsis
	release_date: Optional[str] = None  # ISO date string
	release_year: Optional[int] = None  # e.g. 2010
	duration: Optional[int] = None  # runtime in minutes
	rating: Optional[float] = None  # external rating on a 0-10 scale
	content_rating: Optional[str] = None  # e.g. "PG-13"
	language: Optional[str] = None  # primary language code, e.g. "en"
	country: Optional[str] = None  # primary country code, e.g. "US"
	budget: Optional[float] = None
	gross_revenue: Optional[float] = None
	vote_count: Optional[int] = None
	critic_score: Optional[float] = None  # e.g. metascore
	is_adult: bool = False
	poster_url: Optional[str] = None
	trailer_url: Optional[str] = None
	created_at: Optional[str] = None  # ISO timestamp
	genres: List[str] = field(default_factory=list)  # flat genre tags
	studios: List[str] = field(default_factory=list)
	countries: List[str] = field(default_factory=list)
	languages: List[str] = field(default_factory=list)
	score: Optional[float] = None  # vector similarity, set only by vector search
	embedding: Optional[List[float]] = None  # write path only, never returned

	@classmethod
	def from_payload(cls, payload: Dict[str, Any], score: Optional[float] = None) -> "Movie":
		"""
		Convert a stored payload into a Movie.
		Any stored vector is ignored; `score` is attached only when given.
		"""
		data = dict(payload or {})  # copy so we never mutate store results
		data.pop("embedding", None)  # the vector never leaves the store
		data.pop("score", None)  # score comes from the search, not the payload

		kwargs: Dict[str, Any] = {}
		for name in cls.__dataclass_fields__:
			if name in ("score", "embedding") or name not in data:
				continue
			kwargs[name] = data[name]
		for name in _LIST_FIELDS:
			kwargs[name] = _as_list(kwargs.get(name))
		kwargs["id"] = str(data.get("id", ""))
		kwargs["title"] = data.get("title") or ""
		kwargs["description"] = data.get("description") or ""
		kwargs["is_adult"] = bool(data.get("is_adult", False))

		return cls(score=score, **kwargs)

	def to_payload(self) -> Dict[str, Any]:
		"""Payload stored alongside the vector (no score, no embedding)."""
		payload = self.to_dict()
		payload.pop("score", None)
		return payload

	def to_dict(self) -> Dict[str, Any]:
		"""
		Caller-facing representation.
		Never contains the embedding; contains `score` only for vector results.
		"""
		data = {name: getattr(self, name) for name in self.__dataclass_fields__ if name != "embedding"}
		if self.score is None:
			data.pop("score")
		return data

	def searchable_text(self) -> str:
		"""Text fed to the embedding model when indexing this movie."""
		parts = [self.title] * 2  # title weighted most
		if self.original_title and self.original_title != self.title:
			parts.append(self.original_title)
		parts.extend(self.genres)
		if self.description:
			parts.append(self.description)
		return " ".join(p for p in parts if p)


def _as_list(value: Any) -> List[str]:
	"""
	Normalize a value that may be None, a list, or a comma-separated string
	into a list of clean strings.
	"""
	if value is None:  # missing field
		return []
	if isinstance(value, (list, tuple)):  # already a sequence
		return [str(item).strip() for item in value if item]
	if isinstance(value, str):  # comma-separated string
		return [item.strip() for item in value.split(",") if item.strip()]
	return []


@dataclass
class SearchRequest:
	"""
	Free-text query plus structured filters for one search call.
	The limit is validated at the HTTP boundary, not here.
	"""
	query: Optional[str] = None  # free text; empty means filter-only browse
	genres: Optional[List[str]] = None  # OR-matched genre tags
	year_from: Optional[int] = None  # inclusive lower bound on release year
	year_to: Optional[int] = None  # inclusive upper bound on release year
	min_rating: Optional[float] = None  # inclusive lower bound on rating
	language: Optional[str] = None  # exact language match
	limit: int = 20  # maximum number of results

	def has_query(self) -> bool:
		return bool(self.query and self.query.strip())


@dataclass
class IntentEntities:
	"""Entities that appear literally in a query."""
	genres: List[str] = field(default_factory=list)
	actors: List[str] = field(default_factory=list)
	directors: List[str] = field(default_factory=list)
	years: List[int] = field(default_factory=list)
	keywords: List[str] = field(default_factory=list)


@dataclass
class QueryIntent:
	"""
	Represents the meaning we extract from the user's natural-language query.
	Computed per call and never cached.
	"""
	type: str  # search | recommendation | comparison | filter | chat
	confidence: float  # 0..1
	entities: IntentEntities
	sentiment: str  # positive | negative | neutral
	expanded_query: str  # synonym-enriched query
	search_strategy: str  # vector | filter | hybrid

	def to_dict(self) -> Dict[str, Any]:
		return {
			"type": self.type,
			"confidence": self.confidence,
			"entities": {
				"genres": list(self.entities.genres),
				"actors": list(self.entities.actors),
				"directors": list(self.entities.directors),
				"years": list(self.entities.years),
				"keywords": list(self.entities.keywords),
			},
			"sentiment": self.sentiment,
			"expandedQuery": self.expanded_query,
			"searchStrategy": self.search_strategy,
		}
