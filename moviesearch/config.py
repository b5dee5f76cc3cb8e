"""
Configuration module.
Reads runtime settings from environment variables (optionally from a .env file)
and configures the console logger.
"""

import os  # environment access
import sys  # stderr sink for the logger
from dataclasses import dataclass  # plain settings container
from typing import Optional  # optional credentials

from dotenv import load_dotenv  # .env support for local development
from loguru import logger  # console logger


def _env_bool(name: str, default: bool = False) -> bool:
	value = os.getenv(name)
	if value is None:
		return default
	return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
	"""
	All tunables for the search service.
	Defaults match a local Qdrant instance and the Cohere v2 embed endpoint.
	"""
	qdrant_host: str = "localhost"  # vector store host
	qdrant_port: int = 6333  # vector store REST port
	qdrant_https: bool = False  # use TLS for the vector store
	qdrant_api_key: Optional[str] = None  # optional vector store key
	qdrant_url: Optional[str] = None  # full URL overrides host/port when set
	collection_name: str = "movies"  # collection holding movie points

	embedding_dimension: int = 1024  # fixed vector size (remote and local)
	embedding_api_url: str = "https://api.cohere.com/v2/embed"
	embedding_api_key: Optional[str] = None  # no key -> local embeddings only
	embedding_model: str = "embed-english-v3.0"
	embedding_max_attempts: int = 15  # attempts per embed call
	embedding_timeout: float = 30.0  # per-request HTTP timeout in seconds

	score_threshold: float = 0.3  # minimum cosine similarity kept
	default_limit: int = 20
	max_limit: int = 100

	llm_api_key: Optional[str] = None  # no key -> rule-based intent only
	llm_model: str = "gpt-4o-mini"

	init_max_attempts: int = 5  # collection initialization attempts
	init_retry_delay: float = 2.0  # seconds between initialization attempts

	log_level: str = "INFO"

	@classmethod
	def from_env(cls, env_file: Optional[str] = None) -> "Settings":
		"""Build settings from the process environment (after loading .env)."""
		load_dotenv(env_file)  # no-op when the file is missing
		return cls(
			qdrant_host=os.getenv("QDRANT_HOST", "localhost"),
			qdrant_port=int(os.getenv("QDRANT_PORT", 6333)),
			qdrant_https=_env_bool("QDRANT_HTTPS"),
			qdrant_api_key=os.getenv("QDRANT_API_KEY") or None,
			qdrant_url=os.getenv("QDRANT_URL") or None,
			collection_name=os.getenv("MOVIES_COLLECTION", "movies"),
			embedding_dimension=int(os.getenv("EMBEDDING_DIMENSION", 1024)),
			embedding_api_url=os.getenv("EMBEDDING_API_URL", "https://api.cohere.com/v2/embed"),
			embedding_api_key=os.getenv("EMBEDDING_API_KEY") or os.getenv("COHERE_API_KEY") or None,
			embedding_model=os.getenv("EMBEDDING_MODEL", "embed-english-v3.0"),
			embedding_max_attempts=int(os.getenv("EMBEDDING_MAX_ATTEMPTS", 15)),
			embedding_timeout=float(os.getenv("EMBEDDING_TIMEOUT", 30.0)),
			score_threshold=float(os.getenv("SCORE_THRESHOLD", 0.3)),
			default_limit=int(os.getenv("DEFAULT_LIMIT", 20)),
			max_limit=int(os.getenv("MAX_LIMIT", 100)),
			llm_api_key=os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY") or None,
			llm_model=os.getenv("LLM_MODEL", "gpt-4o-mini"),
			init_max_attempts=int(os.getenv("INIT_MAX_ATTEMPTS", 5)),
			init_retry_delay=float(os.getenv("INIT_RETRY_DELAY", 2.0)),
			log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
		)

	@property
	def qdrant_location(self) -> str:
		"""URL used to reach the vector store."""
		if self.qdrant_url:
			return self.qdrant_url
		scheme = "https" if self.qdrant_https else "http"
		return f"{scheme}://{self.qdrant_host}:{self.qdrant_port}"


def configure_logging(level: str = "INFO") -> None:
	"""Replace loguru's default sink with a stderr sink at the given level."""
	logger.remove()
	logger.add(sys.stderr, level=level)
	logger.debug(f"[Config] Logging configured at level {level}")
