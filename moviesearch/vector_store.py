"""
Vector store module using Qdrant.
Handles creating, managing, and searching the movie collection, plus the
collection lifecycle (existence, payload indexes, readiness).
"""

# Import uuid to derive stable point ids from movie ids
import uuid  # deterministic point ids
# Import threading for the process-wide readiness flag
import threading  # Event used as a flag
# Import NumPy for typed arrays passed to the store
import numpy as np  # numeric arrays
# contextmanager wraps store calls that need an existing collection
from contextlib import contextmanager  # error translation scope
# Typing hints for clarity of public API
from typing import Any, Dict, List, Optional, Sequence, Tuple  # type hints

# Qdrant client and its request/response models
from qdrant_client import QdrantClient, models  # vector store client
from qdrant_client.http.exceptions import UnexpectedResponse  # REST errors (status_code)

# Import our Movie model for type hints and mapping
from .models import Movie  # movie data class
from .config import Settings  # connection settings
from .filters import GENRES_KEY, LANGUAGE_KEY, RATING_KEY, TITLE_KEY, YEAR_KEY  # payload keys
from .retry import CancellableDelay  # interruptible sleep

# Console logging
from loguru import logger  # console logger


class CollectionNotReadyError(RuntimeError):
	"""The backing collection is missing or has not finished initializing."""


def _is_missing_collection(error: Exception) -> bool:
	"""True for the remote 404 and the local-mode error raised for an unknown collection."""
	if isinstance(error, UnexpectedResponse):
		return error.status_code == 404
	return isinstance(error, ValueError) and "not found" in str(error).lower()


class VectorStore:
	"""
	Thin storage interface over one Qdrant collection:
	ensure_collection, create_index, upsert, search, scroll and count.
	"""

	def __init__(self, client: QdrantClient, collection_name: str = "movies"):
		self.client = client  # Qdrant client (remote or in-memory)
		self.collection_name = collection_name  # collection holding movie points
		logger.info(f"[VectorStore] Using collection '{collection_name}'")

	@classmethod
	def from_settings(cls, settings: Settings) -> "VectorStore":
		client = QdrantClient(url=settings.qdrant_location, api_key=settings.qdrant_api_key, timeout=10)
		return cls(client, settings.collection_name)

	@contextmanager
	def _existing_collection(self):
		"""Re-raise "collection not found" store errors as CollectionNotReadyError."""
		try:
			yield
		except (UnexpectedResponse, ValueError) as e:
			if _is_missing_collection(e):
				raise CollectionNotReadyError(f"Collection '{self.collection_name}' does not exist") from e
			raise

	def ping(self) -> bool:
		"""Return True when the store answers a cheap request."""
		try:
			self.client.get_collections()
			return True
		except Exception as e:
			logger.warning(f"[VectorStore] Store unreachable: {e}")
			return False

	def ensure_collection(self, vector_size: int, distance: str = "Cosine") -> bool:
		"""
		Create the collection if it does not exist.
		Returns True when it was created. Raises ValueError when an existing
		collection has a different vector size.
		"""
		if self.client.collection_exists(self.collection_name):
			info = self.client.get_collection(self.collection_name)
			vectors = info.config.params.vectors
			if isinstance(vectors, models.VectorParams) and vectors.size != vector_size:
				raise ValueError(
					f"Collection '{self.collection_name}' has vector size {vectors.size}, expected {vector_size}"
				)
			logger.debug(f"[VectorStore] Collection '{self.collection_name}' already exists")
			return False

		self.client.create_collection(
			collection_name=self.collection_name,
			vectors_config=models.VectorParams(size=vector_size, distance=models.Distance(distance)),
		)
		logger.info(f"[VectorStore] Created collection '{self.collection_name}' | dim={vector_size} | metric={distance}")
		return True

	def create_index(self, field_name: str, field_schema: models.PayloadSchemaType) -> bool:
		"""Create a payload index unless one already exists. Returns True when created."""
		existing = self.client.get_collection(self.collection_name).payload_schema or {}
		if field_name in existing:
			return False
		self.client.create_payload_index(
			collection_name=self.collection_name,
			field_name=field_name,
			field_schema=field_schema,
			wait=True,
		)
		logger.info(f"[VectorStore] Created {field_schema.value} index on '{field_name}'")
		return True

	def upsert(self, movies: List[Movie], embeddings: np.ndarray) -> int:
		"""
		Write movies and their vectors.
		- movies: list of Movie objects
		- embeddings: array of shape (num_movies, dimension)
		"""
		# Validate count consistency between metadata and vectors
		if len(movies) != embeddings.shape[0]:
			raise ValueError(
				f"Number of movies ({len(movies)}) doesn't match number of embeddings ({embeddings.shape[0]})"
			)
		points = [
			models.PointStruct(id=point_id(movie.id), vector=[float(x) for x in vector], payload=movie.to_payload())
			for movie, vector in zip(movies, embeddings)
		]
		if points:
			with self._existing_collection():
				self.client.upsert(collection_name=self.collection_name, points=points, wait=True)
		logger.info(f"[VectorStore] Upserted {len(points)} movies into '{self.collection_name}'")
		return len(points)

	def search(
		self,
		query_vector: Sequence[float],
		limit: int,
		query_filter: Optional[models.Filter] = None,
		score_threshold: Optional[float] = None,
	) -> List[Tuple[Dict[str, Any], float]]:
		"""
		Nearest-neighbor search.
		Returns (payload, similarity) pairs ordered by descending similarity.
		"""
		with self._existing_collection():
			response = self.client.query_points(
				collection_name=self.collection_name,
				query=[float(x) for x in query_vector],
				query_filter=query_filter,
				limit=limit,
				score_threshold=score_threshold,
				with_payload=True,
				with_vectors=False,
			)
		return [(point.payload or {}, float(point.score)) for point in response.points]

	def scroll(
		self,
		limit: int,
		query_filter: Optional[models.Filter] = None,
		payload_fields: Optional[List[str]] = None,
	) -> List[Dict[str, Any]]:
		"""Return up to `limit` payloads matching the filter, in store order."""
		with self._existing_collection():
			records, _next_offset = self.client.scroll(
				collection_name=self.collection_name,
				scroll_filter=query_filter,
				limit=limit,
				with_payload=payload_fields if payload_fields else True,
				with_vectors=False,
			)
		return [record.payload or {} for record in records]

	def count(self, query_filter: Optional[models.Filter] = None) -> int:
		"""Exact number of points matching the filter."""
		with self._existing_collection():
			result = self.client.count(collection_name=self.collection_name, count_filter=query_filter, exact=True)
		return result.count


def point_id(movie_id: str) -> str:
	"""Stable UUID point id for a movie identifier."""
	return str(uuid.uuid5(uuid.NAMESPACE_URL, f"movie:{movie_id}"))


class CollectionManager:
	"""
	Makes sure the movie collection and its payload indexes exist and exposes
	a readiness flag that searches check before touching the store.
	"""

	# Payload indexes needed by the filter and text-fallback conditions
	REQUIRED_INDEXES: Dict[str, models.PayloadSchemaType] = {
		TITLE_KEY: models.PayloadSchemaType.TEXT,
		GENRES_KEY: models.PayloadSchemaType.KEYWORD,
		YEAR_KEY: models.PayloadSchemaType.INTEGER,
		RATING_KEY: models.PayloadSchemaType.FLOAT,
		LANGUAGE_KEY: models.PayloadSchemaType.KEYWORD,
	}

	def __init__(
		self,
		store: VectorStore,
		vector_size: int,
		distance: str = "Cosine",
		max_attempts: int = 5,
		retry_delay: float = 2.0,
		delay: Optional[CancellableDelay] = None,
	):
		self.store = store
		self.vector_size = vector_size
		self.distance = distance
		self.max_attempts = max_attempts
		self.retry_delay = retry_delay
		self.delay = delay or CancellableDelay()
		self._ready = threading.Event()

	def is_ready(self) -> bool:
		"""Non-blocking readiness probe."""
		return self._ready.is_set()

	def ensure_ready(self) -> None:
		"""Create the collection and any missing indexes. Safe to repeat."""
		self.store.ensure_collection(self.vector_size, self.distance)
		for field_name, schema in self.REQUIRED_INDEXES.items():
			self.store.create_index(field_name, schema)
		self._ready.set()
		logger.info(f"[VectorStore] Collection '{self.store.collection_name}' is ready")

	def initialize(self) -> bool:
		"""
		Run `ensure_ready` with a fixed delay between attempts.
		After the last failed attempt the service stays in a degraded, not-ready
		state instead of raising.
		"""
		for attempt in range(1, self.max_attempts + 1):
			try:
				self.ensure_ready()
				return True
			except Exception as e:
				logger.warning(
					f"[VectorStore] Collection initialization attempt {attempt}/{self.max_attempts} failed: {e}"
				)
			if attempt == self.max_attempts:
				break
			if self.delay.wait(self.retry_delay):
				logger.warning("[VectorStore] Collection initialization cancelled")
				return False
		logger.error(
			f"[VectorStore] Collection '{self.store.collection_name}' not initialized after {self.max_attempts} attempts; search is unavailable"
		)
		return False

	def require_ready(self) -> None:
		if not self.is_ready():
			raise CollectionNotReadyError(f"Collection '{self.store.collection_name}' is not ready")

	@contextmanager
	def available(self):
		"""
		Scope for store access: fails fast when not ready, and drops back to
		not-ready when the store reports the collection missing.
		"""
		self.require_ready()
		try:
			yield
		except CollectionNotReadyError as e:
			if self._ready.is_set():
				self._ready.clear()
				logger.error(f"[VectorStore] {e}; marking collection as not ready")
			raise

	def close(self) -> None:
		"""Abort any pending initialization delay."""
		self.delay.cancel()

