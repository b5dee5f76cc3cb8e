"""
Search engine module.
Resolves a search request into movies: vector similarity search, keyword/text
fallback, or filter-only browsing.
"""

from dataclasses import replace  # derive per-call requests
from typing import Any, Dict, List, Optional, Tuple  # type annotations for clarity

# Import project modules for data structures and components
from .models import Movie, QueryIntent, SearchRequest  # core data classes
from .embeddings import EmbeddingGenerator  # embedding provider adapter
from .vector_store import CollectionManager, CollectionNotReadyError, VectorStore  # Qdrant store and lifecycle
from .filters import build_filter, build_text_filter  # native filter construction
from .preprocessing import preprocess_query, query_tokens  # query cleaning
from .query_parser import QueryIntentClassifier, genre_label  # query understanding

# Import loguru for console logging
from loguru import logger  # simple structured logger


class SearchEngine:
	"""
	High-level search API combining preprocessing, filters, vector search and
	the text/browse fallbacks. Holds no per-request state.
	"""

	def __init__(
		self,
		store: VectorStore,
		collection: CollectionManager,
		embedding_generator: EmbeddingGenerator,
		classifier: Optional[QueryIntentClassifier] = None,
		score_threshold: float = 0.3,
	):
		self.store = store  # storage interface
		self.collection = collection  # readiness precondition
		self.embedding_generator = embedding_generator  # query embeddings
		self.classifier = classifier or QueryIntentClassifier()  # optional intent layer
		self.score_threshold = score_threshold  # minimum similarity kept
		logger.info(f"[Engine] Ready | threshold={score_threshold}")

	def search(self, request: SearchRequest) -> List[Movie]:
		"""
		Resolve a request into an ordered list of movies.
		Raises CollectionNotReadyError when the collection is unavailable.
		"""
		with self.collection.available():
			return self._resolve(request)

	def _resolve(self, request: SearchRequest) -> List[Movie]:
		query_filter = build_filter(request)
		limit = max(0, int(request.limit))
		if limit == 0:
			return []

		if not request.has_query():
			logger.debug(f"[Engine] Filter-only browse | limit={limit}")
			return [Movie.from_payload(p) for p in self.store.scroll(limit, query_filter)]

		cleaned = preprocess_query(request.query)
		logger.debug(f"[Engine] Query '{request.query}' -> '{cleaned}'")

		movies = self._vector_search(cleaned, query_filter, limit)
		if movies:
			return movies

		logger.info(f"[Engine] No vector results for '{cleaned}', falling back to text search")
		return self._text_search(cleaned, query_filter, limit)

	def _vector_search(self, cleaned: str, query_filter, limit: int) -> List[Movie]:
		"""Nearest neighbors above the threshold; an empty list means "fall back"."""
		try:
			vector = self.embedding_generator.generate_query_embedding(cleaned)
			hits = self.store.search(vector, limit=limit, query_filter=query_filter, score_threshold=self.score_threshold)
		except CollectionNotReadyError:
			raise
		except Exception as e:
			logger.warning(f"[Engine] Vector search failed: {e}")
			return []
		# threshold is applied store-side as well
		movies = [Movie.from_payload(payload, score=score) for payload, score in hits if score >= self.score_threshold]
		logger.debug(f"[Engine] Vector search returned {len(movies)} results")
		return movies[:limit]

	def _text_search(self, cleaned: str, query_filter, limit: int) -> List[Movie]:
		"""Keyword conditions on title/description; results carry no score."""
		tokens = query_tokens(cleaned) or cleaned.split()
		text_filter = build_text_filter(query_filter, tokens)
		payloads = self.store.scroll(limit, text_filter)
		logger.debug(f"[Engine] Text search returned {len(payloads)} results")
		return [Movie.from_payload(p) for p in payloads]

	def find_all(self, request: SearchRequest) -> Tuple[List[Movie], int]:
		"""Browse with filters only and report the total number of matches."""
		query_filter = build_filter(request)
		limit = max(0, int(request.limit))
		with self.collection.available():
			movies = [Movie.from_payload(p) for p in self.store.scroll(limit, query_filter)] if limit else []
			total = self.store.count(query_filter)
		return movies, total

	def search_with_intent(self, request: SearchRequest) -> Tuple[List[Movie], QueryIntent]:
		"""
		Classify the query first, then search.
		- filter strategy: literal genres/years fill empty request filters and
		  the leftover keywords become the query
		- vector strategy: the expanded query is searched
		- hybrid: both
		"""
		intent = self.classifier.classify(request.query or "")
		refined = request
		strategy = intent.search_strategy

		if strategy in ("filter", "hybrid"):
			refined = self._apply_entities(refined, intent)
		if strategy == "filter":
			refined = replace(refined, query=" ".join(intent.entities.keywords) or None)
		elif intent.expanded_query:
			refined = replace(refined, query=intent.expanded_query)

		logger.debug(f"[Engine] Intent {intent.type}/{strategy} -> query={refined.query!r} genres={refined.genres}")
		return self.search(refined), intent

	def _apply_entities(self, request: SearchRequest, intent: QueryIntent) -> SearchRequest:
		changes: Dict[str, Any] = {}
		if intent.entities.genres and not request.genres:
			changes["genres"] = [genre_label(g) for g in intent.entities.genres]
		years = intent.entities.years
		if years and request.year_from is None and request.year_to is None:
			changes["year_from"] = min(years)
			changes["year_to"] = max(years)
		return replace(request, **changes) if changes else request

	def index_movies(self, movies: List[Movie]) -> int:
		"""Write path: embed movies (or use their precomputed vectors) and upsert."""
		self.collection.require_ready()
		if not movies:
			return 0
		embeddings = self.embedding_generator.generate_movie_embeddings(movies)
		for i, movie in enumerate(movies):
			if movie.embedding is not None:
				embeddings[i] = movie.embedding
		with self.collection.available():
			return self.store.upsert(movies, embeddings)

	def get_all_genres(self, sample_size: int = 10000) -> List[str]:
		"""Sorted distinct genres over the collection (up to `sample_size` movies)."""
		genres = set()
		with self.collection.available():
			payloads = self.store.scroll(sample_size, payload_fields=["genres"])
		for payload in payloads:
			genres.update(g for g in payload.get("genres") or [] if g)
		return sorted(genres)

	def get_statistics(self, sample_size: int = 1000) -> Dict[str, Any]:
		"""Collection-wide counts plus averages over a sample of movies."""
		with self.collection.available():
			total = self.store.count()
			sample = self.store.scroll(sample_size)
		genres, languages, countries = set(), set(), set()
		ratings = []
		for payload in sample:
			genres.update(payload.get("genres") or [])
			if payload.get("language"):
				languages.add(payload["language"])
			if payload.get("country"):
				countries.add(payload["country"])
			if payload.get("rating") is not None:
				ratings.append(float(payload["rating"]))
		return {
			"movies": total,
			"genres": len(genres),
			"languages": len(languages),
			"countries": len(countries),
			"averageRating": round(sum(ratings) / len(ratings), 2) if ratings else 0,
			"sampleSize": len(sample),
		}
