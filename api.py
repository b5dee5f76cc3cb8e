"""
FastAPI server exposing the movie search API.
Endpoints:
- GET /health: readiness of the engine and the movie collection
- GET /api/movies/search?q=...&genres=...&yearFrom=...&yearTo=...&minRating=...&language=...&limit=20
- GET /api/movies: filter-only browse with the total number of matches
- GET /api/movies/genres: distinct genres in the collection
- GET /api/movies/stats: collection statistics
- GET /api/movies/intent?q=...: query intent classification

Startup wires the engine and initializes the Qdrant collection in a background
thread; searches answer 503 until the collection is ready.
"""

# Import standard libraries for timing and the background initializer
import threading  # collection initialization off the startup path
import time  # measure startup and request latencies
from contextlib import asynccontextmanager  # FastAPI lifespan
from typing import Any, Dict, List, Optional  # precise typing for clarity

# Import FastAPI for building the web API and Pydantic for response models
from fastapi import FastAPI, HTTPException, Query  # FastAPI primitives
from pydantic import BaseModel  # response schema definitions

# Import our internal modules for configuration and search
from moviesearch.config import Settings, configure_logging  # environment settings
from moviesearch.embeddings import EmbeddingGenerator  # embedding provider adapter
from moviesearch.models import Movie, SearchRequest  # core data classes
from moviesearch.query_parser import QueryIntentClassifier  # intent layer
from moviesearch.search_engine import SearchEngine  # core search engine
from moviesearch.vector_store import CollectionManager, CollectionNotReadyError, VectorStore  # Qdrant access

# Import loguru for simple, structured console logging
from loguru import logger  # convenient console logger

# Globals that hold the search engine instance and measured startup time
ENGINE: Optional[SearchEngine] = None  # will point to the initialized engine
SETTINGS: Settings = Settings()  # replaced from the environment at startup
STARTUP_TIME_S: float = 0.0  # measures how long startup took


def build_engine(settings: Settings) -> SearchEngine:
	"""Wire store, collection manager, embeddings and classifier from settings."""
	store = VectorStore.from_settings(settings)
	collection = CollectionManager(
		store,
		vector_size=settings.embedding_dimension,
		max_attempts=settings.init_max_attempts,
		retry_delay=settings.init_retry_delay,
	)
	return SearchEngine(
		store=store,
		collection=collection,
		embedding_generator=EmbeddingGenerator.from_settings(settings),
		classifier=QueryIntentClassifier.from_api_key(settings.llm_api_key, settings.llm_model),
		score_threshold=settings.score_threshold,
	)


@asynccontextmanager
async def lifespan(app: FastAPI):
	"""Initialize the search engine once and shut its retry loops down on exit."""
	global ENGINE, SETTINGS, STARTUP_TIME_S  # refer to module-level globals
	start = time.time()  # start timer for startup latency

	SETTINGS = Settings.from_env()
	configure_logging(SETTINGS.log_level)
	logger.info("[API] Startup: wiring search engine...")

	ENGINE = build_engine(SETTINGS)
	# Collection initialization retries with a delay; keep it off the startup path
	threading.Thread(target=ENGINE.collection.initialize, name="collection-init", daemon=True).start()

	STARTUP_TIME_S = time.time() - start  # elapsed seconds
	logger.info(f"[API] Startup complete in {STARTUP_TIME_S:.2f}s. Collection initialization running.")
	yield
	ENGINE.collection.close()  # wake any pending initialization delay
	ENGINE.embedding_generator.delay.cancel()  # abort embedding retries in flight
	logger.info("[API] Shutdown complete")


# Instantiate the FastAPI application with metadata
app = FastAPI(title="Movie Search API", version="1.0.0", lifespan=lifespan)  # web app


# Pydantic model that describes the shape of a single movie in responses
class MovieOut(BaseModel):
	id: str
	title: str
	original_title: Optional[str] = None
	description: str = ""
	release_date: Optional[str] = None
	release_year: Optional[int] = None
	duration: Optional[int] = None
	rating: Optional[float] = None
	content_rating: Optional[str] = None
	language: Optional[str] = None
	country: Optional[str] = None
	budget: Optional[float] = None
	gross_revenue: Optional[float] = None
	vote_count: Optional[int] = None
	critic_score: Optional[float] = None
	is_adult: bool = False
	poster_url: Optional[str] = None
	trailer_url: Optional[str] = None
	created_at: Optional[str] = None
	genres: List[str] = []
	studios: List[str] = []
	countries: List[str] = []
	languages: List[str] = []
	score: Optional[float] = None  # only present for vector search results

	@classmethod
	def from_movie(cls, movie: Movie) -> "MovieOut":
		# to_dict() omits score when absent so it stays unset (and excluded)
		return cls(**movie.to_dict())


# Pydantic model for the complete search response payload
class SearchResponse(BaseModel):
	movies: List[MovieOut]  # ordered results
	count: int  # number of movies returned
	query: Optional[str] = None  # original query string
	filters: Dict[str, Any]  # structured filters that were applied
	searchType: str  # "semantic" when a query was given, else "filtered"
	elapsed_ms: float  # server-side search time in ms
	intent: Optional[Dict[str, Any]] = None  # classifier output when requested


class BrowseResponse(BaseModel):
	movies: List[MovieOut]
	total: int  # matches for the filter, not just this page
	limit: int


def _require_engine() -> SearchEngine:
	if ENGINE is None:  # engine must be ready to serve
		logger.warning("[API] Request received but engine not initialized")
		raise HTTPException(status_code=503, detail="Search engine is not initialized")
	return ENGINE


def _build_request(
	q: Optional[str],
	genres: Optional[str],
	year_from: Optional[int],
	year_to: Optional[int],
	min_rating: Optional[float],
	language: Optional[str],
	limit: int,
) -> SearchRequest:
	"""Boundary validation: split genres and clamp the limit to the system cap."""
	genre_list = [g.strip() for g in genres.split(",") if g.strip()] if genres else None
	return SearchRequest(
		query=q,
		genres=genre_list,
		year_from=year_from,
		year_to=year_to,
		min_rating=min_rating,
		language=language or None,
		limit=min(limit, SETTINGS.max_limit),
	)


# Simple health endpoint for readiness checks
@app.get("/health")
async def health():
	"""Return minimal health info for liveness/readiness probes."""
	return {
		"status": "ok",  # constant indicator
		"engine_ready": ENGINE is not None,  # True if engine initialized
		"collection_ready": ENGINE is not None and ENGINE.collection.is_ready(),
		"startup_seconds": round(STARTUP_TIME_S, 2),  # startup latency
	}


# Main search endpoint that accepts a free-text query and structured filters
@app.get("/api/movies/search", response_model=SearchResponse, response_model_exclude_unset=True)
def search(
	q: Optional[str] = Query(None, description="Free-text movie query"),
	genres: Optional[str] = Query(None, description="Comma-separated genres, any of"),
	yearFrom: Optional[int] = Query(None, ge=1900),
	yearTo: Optional[int] = Query(None, ge=1900),
	minRating: Optional[float] = Query(None, ge=0, le=10),
	language: Optional[str] = Query(None, description="Exact language code"),
	limit: Optional[int] = Query(None, ge=0, description="Results to return (capped at 100)"),
	intent: bool = Query(False, description="Classify the query before searching"),
):
	"""Execute a search and return movies; vector results carry a similarity score."""
	engine = _require_engine()
	request = _build_request(q, genres, yearFrom, yearTo, minRating, language, SETTINGS.default_limit if limit is None else limit)

	start = time.time()  # start timer
	logger.debug(f"[API] /api/movies/search q='{q}' limit={request.limit} intent={intent}")
	try:
		if intent:
			movies, query_intent = engine.search_with_intent(request)
		else:
			movies, query_intent = engine.search(request), None
	except CollectionNotReadyError as e:
		logger.warning(f"[API] Search rejected: {e}")
		raise HTTPException(status_code=503, detail="Movie collection is not ready")
	elapsed_ms = (time.time() - start) * 1000  # compute ms
	logger.info(f"[API] /api/movies/search served {len(movies)} results in {elapsed_ms:.2f} ms")

	extra = {"intent": query_intent.to_dict()} if query_intent is not None else {}
	return SearchResponse(
		movies=[MovieOut.from_movie(m) for m in movies],
		count=len(movies),
		query=q,
		filters={
			"genres": request.genres,
			"yearFrom": request.year_from,
			"yearTo": request.year_to,
			"minRating": request.min_rating,
			"language": request.language,
		},
		searchType="semantic" if request.has_query() else "filtered",
		elapsed_ms=round(elapsed_ms, 2),
		**extra,
	)


@app.get("/api/movies", response_model=BrowseResponse, response_model_exclude_unset=True)
def find_all(
	genres: Optional[str] = Query(None),
	yearFrom: Optional[int] = Query(None, ge=1900),
	yearTo: Optional[int] = Query(None, ge=1900),
	minRating: Optional[float] = Query(None, ge=0, le=10),
	language: Optional[str] = Query(None),
	limit: Optional[int] = Query(None, ge=0),
):
	"""Browse movies by structured filters with a total count."""
	engine = _require_engine()
	request = _build_request(None, genres, yearFrom, yearTo, minRating, language, SETTINGS.default_limit if limit is None else limit)
	try:
		movies, total = engine.find_all(request)
	except CollectionNotReadyError:
		raise HTTPException(status_code=503, detail="Movie collection is not ready")
	return BrowseResponse(movies=[MovieOut.from_movie(m) for m in movies], total=total, limit=request.limit)


@app.get("/api/movies/genres")
def genres():
	"""List all distinct genres."""
	engine = _require_engine()
	try:
		return {"genres": engine.get_all_genres()}
	except CollectionNotReadyError:
		raise HTTPException(status_code=503, detail="Movie collection is not ready")


@app.get("/api/movies/stats")
def stats():
	"""Collection statistics."""
	engine = _require_engine()
	try:
		return engine.get_statistics()
	except CollectionNotReadyError:
		raise HTTPException(status_code=503, detail="Movie collection is not ready")


@app.get("/api/movies/intent")
def intent(q: str = Query(..., min_length=1, description="Natural language movie query")):
	"""Classify a query without searching."""
	engine = _require_engine()
	return engine.classifier.classify(q).to_dict()
