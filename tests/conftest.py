"""Shared pytest fixtures for the search service tests."""

import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
import pytest
from qdrant_client import QdrantClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
	sys.path.insert(0, str(ROOT))

from moviesearch.embeddings import EmbeddingGenerator
from moviesearch.models import Movie
from moviesearch.search_engine import SearchEngine
from moviesearch.vector_store import CollectionManager, CollectionNotReadyError, VectorStore

DIM = 64  # small vectors keep the in-memory store fast


class RecordingDelay:
	"""Delay double: records requested waits instead of sleeping."""

	def __init__(self, cancel_after: Optional[int] = None):
		self.waits: List[float] = []
		self.cancel_after = cancel_after

	def wait(self, seconds: float) -> bool:
		self.waits.append(seconds)
		return self.cancel_after is not None and len(self.waits) >= self.cancel_after

	def cancel(self) -> None:
		self.cancel_after = 0


class FakeStore:
	"""Storage double recording every call; results are set per test."""

	collection_name = "movies"

	def __init__(self):
		self.search_results: List[Tuple[Dict[str, Any], float]] = []
		self.scroll_results: List[Dict[str, Any]] = []
		self.search_error: Optional[Exception] = None
		self.total = 0
		self.missing = False  # behave as if the collection was dropped
		self.calls: List[Tuple[str, Dict[str, Any]]] = []

	def ensure_collection(self, vector_size, distance="Cosine"):
		self.calls.append(("ensure_collection", {"vector_size": vector_size, "distance": distance}))
		return True

	def create_index(self, field_name, field_schema):
		self.calls.append(("create_index", {"field_name": field_name}))
		return True

	def search(self, query_vector, limit, query_filter=None, score_threshold=None):
		self.calls.append(("search", {"limit": limit, "filter": query_filter, "threshold": score_threshold, "vector": query_vector}))
		self._check_exists()
		if self.search_error is not None:
			raise self.search_error
		return self.search_results[:limit]

	def scroll(self, limit, query_filter=None, payload_fields=None):
		self.calls.append(("scroll", {"limit": limit, "filter": query_filter, "fields": payload_fields}))
		self._check_exists()
		return self.scroll_results[:limit]

	def count(self, query_filter=None):
		self.calls.append(("count", {"filter": query_filter}))
		self._check_exists()
		return self.total

	def upsert(self, movies, embeddings):
		self.calls.append(("upsert", {"movies": movies, "embeddings": embeddings}))
		return len(movies)

	def _check_exists(self):
		if self.missing:
			raise CollectionNotReadyError(f"Collection '{self.collection_name}' does not exist")

	def calls_named(self, name: str) -> List[Dict[str, Any]]:
		return [kwargs for call, kwargs in self.calls if call == name]


@pytest.fixture
def movie_factory() -> Callable[..., Movie]:
	"""Return a factory that builds a valid Movie with optional overrides."""

	def _factory(**overrides: Any) -> Movie:
		data: Dict[str, Any] = {
			"id": "m-1",
			"title": "Inception",
			"original_title": "Inception",
			"description": "a thief who steals corporate secrets through dream-sharing technology",
			"release_date": "2010-07-16",
			"release_year": 2010,
			"duration": 148,
			"rating": 8.8,
			"content_rating": "PG-13",
			"language": "en",
			"country": "US",
			"budget": 160_000_000,
			"gross_revenue": 836_800_000,
			"vote_count": 2_400_000,
			"critic_score": 74,
			"is_adult": False,
			"poster_url": "https://image.test/inception.jpg",
			"trailer_url": None,
			"created_at": "2024-01-01T00:00:00Z",
			"genres": ["Action", "Sci-Fi"],
			"studios": ["Warner Bros."],
			"countries": ["US", "GB"],
			"languages": ["en", "ja"],
		}
		data.update(overrides)
		return Movie(**data)

	return _factory


@pytest.fixture
def delay() -> RecordingDelay:
	return RecordingDelay()


@pytest.fixture
def fake_store() -> FakeStore:
	return FakeStore()


@pytest.fixture
def local_embedder() -> EmbeddingGenerator:
	"""Embedding generator without credentials: local hash embeddings only."""
	return EmbeddingGenerator(api_key=None, embedding_dimension=DIM)


@pytest.fixture
def fake_engine(fake_store, local_embedder, delay) -> SearchEngine:
	collection = CollectionManager(fake_store, vector_size=DIM, delay=delay)
	collection.ensure_ready()
	return SearchEngine(fake_store, collection, local_embedder, score_threshold=0.3)


@pytest.fixture
def memory_store() -> VectorStore:
	"""Vector store backed by Qdrant's in-process local mode."""
	client = QdrantClient(":memory:")
	yield VectorStore(client, "movies")
	client.close()


@pytest.fixture
def seeded_engine(memory_store, local_embedder, movie_factory, delay) -> SearchEngine:
	"""Engine over an in-memory collection with a small catalog."""
	collection = CollectionManager(memory_store, vector_size=DIM, delay=delay)
	collection.ensure_ready()
	movies = [
		movie_factory(),
		movie_factory(id="m-2", title="The Hangover", original_title=None, description="three friends wake up after a bachelor party in las vegas", release_year=2009, rating=7.7, genres=["Comedy"]),
		movie_factory(id="m-3", title="Bridesmaids", original_title=None, description="competition between the maid of honor and a bridesmaid", release_year=2011, rating=6.8, genres=["Comedy", "Romance"]),
		movie_factory(id="m-4", title="21 Jump Street", original_title=None, description="two cops go undercover in a high school", release_year=2012, rating=7.2, genres=["Action", "Comedy"]),
		movie_factory(id="m-5", title="Deadpool", original_title=None, description="a wisecracking mercenary gets experimented on", release_year=2016, rating=8.0, genres=["Action", "Comedy"]),
		movie_factory(id="m-6", title="Amelie", original_title="Le Fabuleux Destin d'Amelie Poulain", description="a shy waitress decides to change the lives of those around her", release_year=2001, rating=8.3, language="fr", genres=["Comedy", "Romance"]),
		movie_factory(id="m-7", title="The Conjuring", original_title=None, description="paranormal investigators help a family terrorized by a dark presence", release_year=2013, rating=7.5, genres=["Horror"]),
	]
	vectors = [local_embedder.embed("inception")] + [local_embedder.embed(m.description) for m in movies[1:]]
	memory_store.upsert(movies, np.vstack(vectors))
	return SearchEngine(memory_store, collection, local_embedder, score_threshold=0.3)
