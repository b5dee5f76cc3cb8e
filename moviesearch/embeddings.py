"""
Embedding generation module.
Turns text into fixed-length vectors using a remote embedding API, degrading to a
deterministic local hash embedding whenever the provider is unavailable.
"""

# Import math for the trigonometric weights of the local embedding
import math  # sin/cos/tan
# Import re to split text into words for the local embedding
import re  # word tokenization
# Import NumPy for numerical arrays that store embeddings
import numpy as np  # efficient numeric arrays
# Import typing helpers for clear API contracts
from typing import List, Optional, Sequence  # list types
# Import requests to call the embedding provider over HTTPS
import requests  # HTTP client

# Import our Movie data class so we can type inputs for the write path
from .models import Movie  # structured movie object
from .config import Settings  # runtime configuration
from .retry import CancellableDelay, RetryPolicy  # bounded retries

# Import loguru for consistent console logging (friendlier than print)
from loguru import logger  # console logger

_WORDS = re.compile(r"\w+")
_MASK32 = 0xFFFFFFFF  # keep hashes in 32 bits


class EmbeddingGenerator:
	"""
	Generates embeddings for movies and queries.
	Every public method returns vectors of `embedding_dimension` and never raises
	on provider failures.
	"""

	def __init__(
		self,
		api_key: Optional[str] = None,
		model_name: str = "embed-english-v3.0",
		api_url: str = "https://api.cohere.com/v2/embed",
		embedding_dimension: int = 1024,
		retry_policy: Optional[RetryPolicy] = None,
		delay: Optional[CancellableDelay] = None,
		session: Optional[requests.Session] = None,
		timeout: float = 30.0,
	):
		"""
		Initialize the embedding generator.
		- api_key: provider credential; without it only local embeddings are produced
		- retry_policy: backoff schedule for rate limits and server errors
		- delay: sleep primitive between attempts (cancel it to abort retries)
		"""
		if embedding_dimension <= 0:
			raise ValueError("Embedding dimension must be positive")
		self.api_key = api_key
		self.model_name = model_name
		self.api_url = api_url
		self.embedding_dimension = embedding_dimension
		self.retry_policy = retry_policy or RetryPolicy()
		self.delay = delay or CancellableDelay()
		self.session = session or requests.Session()
		self.timeout = timeout
		mode = "remote" if api_key else "local only"
		logger.info(f"[Embeddings] Provider ready | model={model_name} | dim={embedding_dimension} | mode={mode}")

	@classmethod
	def from_settings(cls, settings: Settings, delay: Optional[CancellableDelay] = None) -> "EmbeddingGenerator":
		return cls(
			api_key=settings.embedding_api_key,
			model_name=settings.embedding_model,
			api_url=settings.embedding_api_url,
			embedding_dimension=settings.embedding_dimension,
			retry_policy=RetryPolicy(max_attempts=settings.embedding_max_attempts),
			delay=delay,
			timeout=settings.embedding_timeout,
		)

	def embed(self, text: str, input_type: str = "search_query") -> np.ndarray:
		"""
		Embed a single text. Tries the remote provider first and falls back to
		the local embedding on any failure.
		"""
		text = text or ""
		if self.api_key and text.strip():
			vectors = self._request_remote([text], input_type)
			if vectors is not None:
				return vectors[0]
			logger.warning("[Embeddings] Remote embedding unavailable, using local fallback")
		return self.local_embedding(text)

	def generate_query_embedding(self, query: str) -> np.ndarray:
		"""Generate an embedding vector for a single (preprocessed) query string."""
		return self.embed(query, input_type="search_query")

	def embed_documents(self, texts: Sequence[str]) -> np.ndarray:
		"""
		Embed catalog documents in one request.
		Returns an array of shape (len(texts), embedding_dimension).
		"""
		if not texts:
			return np.zeros((0, self.embedding_dimension))
		texts = [t or "" for t in texts]
		if self.api_key:
			vectors = self._request_remote(texts, "search_document")
			if vectors is not None:
				return np.vstack(vectors)
			logger.warning(f"[Embeddings] Remote batch of {len(texts)} failed, using local fallback")
		return np.vstack([self.local_embedding(t) for t in texts])

	def generate_movie_embeddings(self, movies: List[Movie]) -> np.ndarray:
		"""Generate embeddings for movies from their searchable text."""
		if not movies:
			raise ValueError("No movies provided for embedding generation")
		logger.info(f"[Embeddings] Generating embeddings for {len(movies)} movies")
		return self.embed_documents([m.searchable_text() for m in movies])

	def get_embedding_dimension(self) -> int:
		"""Return the dimensionality of the embedding vectors."""
		return self.embedding_dimension

	def _request_remote(self, texts: List[str], input_type: str) -> Optional[List[np.ndarray]]:
		"""
		Call the provider with bounded retries.
		Returns None when the call cannot succeed (non-retryable error, retries
		exhausted, cancelled, or malformed response).
		"""
		policy = self.retry_policy
		body = {
			"texts": texts,
			"model": self.model_name,
			"input_type": input_type,
			"embedding_types": ["float"],
		}
		headers = {
			"Authorization": f"Bearer {self.api_key}",
			"Content-Type": "application/json",
			"Accept": "application/json",
		}

		for attempt in range(1, policy.max_attempts + 1):
			try:
				response = self.session.post(self.api_url, json=body, headers=headers, timeout=self.timeout)
			except requests.RequestException as e:
				wait = policy.server_error_delay
				logger.warning(f"[Embeddings] Transport error on attempt {attempt}/{policy.max_attempts}: {e}")
			else:
				status = response.status_code
				if 200 <= status < 300:
					return self._parse_response(response, len(texts))
				if status == 429:
					wait = policy.rate_limit_delay(attempt)
					logger.warning(f"[Embeddings] Rate limited on attempt {attempt}/{policy.max_attempts}, backing off {wait:.0f}s")
				elif status >= 500:
					wait = policy.server_error_delay
					logger.warning(f"[Embeddings] Server error {status} on attempt {attempt}/{policy.max_attempts}")
				else:
					logger.error(f"[Embeddings] Non-retryable client error {status}: {response.text[:200]}")
					return None

			if attempt == policy.max_attempts:
				break
			if self.delay.wait(wait):
				logger.warning("[Embeddings] Retry cancelled")
				return None

		logger.error(f"[Embeddings] Giving up after {policy.max_attempts} attempts")
		return None

	def _parse_response(self, response: requests.Response, expected: int) -> Optional[List[np.ndarray]]:
		try:
			rows = response.json()["embeddings"]["float"]
		except (ValueError, KeyError, TypeError) as e:
			logger.error(f"[Embeddings] Malformed provider response: {e}")
			return None
		if not isinstance(rows, list) or len(rows) != expected:
			logger.error(f"[Embeddings] Expected {expected} embeddings, got {len(rows) if isinstance(rows, list) else type(rows).__name__}")
			return None
		vectors = []
		for row in rows:
			try:
				vector = np.asarray(row, dtype=np.float64)
			except (ValueError, TypeError) as e:
				logger.error(f"[Embeddings] Non-numeric embedding in response: {e}")
				return None
			if vector.shape != (self.embedding_dimension,):
				logger.error(
					f"[Embeddings] Provider dimension {vector.shape} doesn't match expected ({self.embedding_dimension})"
				)
				return None
			if not np.isfinite(vector).all():
				logger.error("[Embeddings] Provider returned a vector with NaN or infinite values")
				return None
			vectors.append(vector)
		return vectors

	def local_embedding(self, text: str) -> np.ndarray:
		"""
		Deterministic hash embedding.
		Each word is hashed by three multiplicative hashes into vector slots that
		receive sine, cosine and tangent weighted contributions; the result is
		L2-normalized unless it is all zeros.
		"""
		dim = self.embedding_dimension
		vector = np.zeros(dim, dtype=np.float64)
		for word in _WORDS.findall((text or "").lower()):
			h1, h2, h3 = 7, 5381, 0
			for ch in word:
				code = ord(ch)
				h1 = (h1 * 31 + code) & _MASK32
				h2 = (h2 * 33 + code) & _MASK32
				h3 = (h3 * 131 + code) & _MASK32
			vector[h1 % dim] += math.sin(h1)
			vector[h2 % dim] += math.cos(h2)
			vector[h3 % dim] += math.tan((h3 % 1000) / 1000.0)  # bounded below tan(1)
		magnitude = np.linalg.norm(vector)
		if magnitude > 0:
			vector /= magnitude
		return vector
