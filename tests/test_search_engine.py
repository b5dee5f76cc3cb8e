"""Tests for the search orchestrator: vector search, text fallback and browsing."""

from unittest.mock import MagicMock

import numpy as np
import pytest

from moviesearch.models import IntentEntities, QueryIntent, SearchRequest
from moviesearch.search_engine import SearchEngine
from moviesearch.vector_store import CollectionManager, CollectionNotReadyError

from conftest import DIM


def _payload(movie_id, title="Some Movie", **extra):
	payload = {"id": movie_id, "title": title, "description": "", "genres": []}
	payload.update(extra)
	return payload


# Decision logic against the fake store

def test_query_uses_vector_search_with_threshold(fake_engine, fake_store):
	fake_store.search_results = [(_payload("a"), 0.91), (_payload("b"), 0.55)]
	movies = fake_engine.search(SearchRequest(query="Dream heist!!", limit=5))

	assert [m.id for m in movies] == ["a", "b"]
	assert [m.score for m in movies] == [0.91, 0.55]
	(call,) = fake_store.calls_named("search")
	assert call["limit"] == 5
	assert call["threshold"] == 0.3
	assert call["vector"].shape == (DIM,)
	assert fake_store.calls_named("scroll") == []


def test_hits_below_threshold_are_discarded(fake_engine, fake_store):
	fake_store.search_results = [(_payload("a"), 0.8), (_payload("b"), 0.1)]
	movies = fake_engine.search(SearchRequest(query="heist"))

	assert [m.id for m in movies] == ["a"]


def test_no_vector_hits_falls_back_to_text_search(fake_engine, fake_store):
	fake_store.search_results = [(_payload("a"), 0.2)]
	fake_store.scroll_results = [_payload("t1"), _payload("t2")]
	movies = fake_engine.search(SearchRequest(query="las vegas", genres=["Comedy"], limit=10))

	assert [m.id for m in movies] == ["t1", "t2"]
	assert all(m.score is None for m in movies)
	(call,) = fake_store.calls_named("scroll")
	assert call["limit"] == 10
	text_filter = call["filter"]
	assert [c.key for c in text_filter.must] == ["genres"]
	assert {c.match.text for c in text_filter.should} == {"las vegas", "las", "vegas"}


def test_vector_failure_falls_back_to_text_search(fake_engine, fake_store):
	fake_store.search_error = RuntimeError("store timeout")
	fake_store.scroll_results = [_payload("t1")]
	movies = fake_engine.search(SearchRequest(query="heist"))

	assert [m.id for m in movies] == ["t1"]
	assert movies[0].score is None


def test_no_query_browses_with_filters_only(fake_engine, fake_store):
	fake_store.scroll_results = [_payload("a"), _payload("b")]
	for query in (None, "", "   "):
		movies = fake_engine.search(SearchRequest(query=query, year_from=2010, limit=2))
		assert [m.id for m in movies] == ["a", "b"]
		assert all(m.score is None for m in movies)

	assert fake_store.calls_named("search") == []
	assert fake_store.calls_named("scroll")[0]["filter"].must[0].range.gte == 2010


def test_limit_zero_returns_nothing(fake_engine, fake_store):
	fake_store.search_results = [(_payload("a"), 0.9)]
	assert fake_engine.search(SearchRequest(query="heist", limit=0)) == []
	assert fake_store.calls_named("search") == []


def test_results_never_exceed_limit(fake_engine, fake_store):
	fake_store.search_results = [(_payload(str(i)), 0.9) for i in range(10)]
	assert len(fake_engine.search(SearchRequest(query="heist", limit=3))) == 3


def test_stored_embedding_is_not_returned(fake_engine, fake_store):
	fake_store.search_results = [(_payload("a", embedding=[0.1] * DIM), 0.9)]
	(movie,) = fake_engine.search(SearchRequest(query="heist"))

	assert movie.embedding is None
	assert "embedding" not in movie.to_dict()


def test_search_requires_ready_collection(fake_store, local_embedder, delay):
	collection = CollectionManager(fake_store, vector_size=DIM, delay=delay)
	engine = SearchEngine(fake_store, collection, local_embedder)

	with pytest.raises(CollectionNotReadyError):
		engine.search(SearchRequest(query="heist"))
	with pytest.raises(CollectionNotReadyError):
		engine.find_all(SearchRequest())
	assert fake_store.calls_named("search") == []


def test_find_all_reports_total(fake_engine, fake_store):
	fake_store.scroll_results = [_payload("a")]
	fake_store.total = 42
	movies, total = fake_engine.find_all(SearchRequest(genres=["Drama"], limit=1))

	assert [m.id for m in movies] == ["a"]
	assert total == 42
	assert fake_store.calls_named("count")[0]["filter"].must[0].key == "genres"


def test_get_all_genres_is_sorted_and_distinct(fake_engine, fake_store):
	fake_store.scroll_results = [{"genres": ["Drama", "Comedy"]}, {"genres": ["Comedy"]}, {"genres": None}, {}]

	assert fake_engine.get_all_genres() == ["Comedy", "Drama"]
	assert fake_store.calls_named("scroll")[0]["fields"] == ["genres"]


def test_get_statistics(fake_engine, fake_store):
	fake_store.total = 3
	fake_store.scroll_results = [
		_payload("a", genres=["Drama"], language="en", country="US", rating=8.0),
		_payload("b", genres=["Drama", "Comedy"], language="fr", country="FR", rating=6.0),
		_payload("c", genres=[], language="en"),
	]
	stats = fake_engine.get_statistics()

	assert stats == {"movies": 3, "genres": 2, "languages": 2, "countries": 2, "averageRating": 7.0, "sampleSize": 3}


def test_index_movies_prefers_precomputed_vectors(fake_engine, fake_store, movie_factory):
	precomputed = [1.0] + [0.0] * (DIM - 1)
	movies = [movie_factory(), movie_factory(id="m-2", title="Heat", embedding=precomputed)]

	assert fake_engine.index_movies(movies) == 2
	(call,) = fake_store.calls_named("upsert")
	assert call["embeddings"].shape == (2, DIM)
	assert np.allclose(call["embeddings"][1], precomputed)


def test_index_movies_with_nothing_to_write(fake_engine, fake_store):
	assert fake_engine.index_movies([]) == 0
	assert fake_store.calls_named("upsert") == []


# Intent-driven search

def _engine_with_intent(fake_store, local_embedder, delay, intent):
	collection = CollectionManager(fake_store, vector_size=DIM, delay=delay)
	collection.ensure_ready()
	classifier = MagicMock()
	classifier.classify.return_value = intent
	return SearchEngine(fake_store, collection, local_embedder, classifier=classifier)


def test_filter_intent_turns_entities_into_filters(fake_store, local_embedder, delay):
	intent = QueryIntent(
		type="filter",
		confidence=0.9,
		entities=IntentEntities(genres=["comedy", "sci-fi"], years=[2015, 2010]),
		sentiment="neutral",
		expanded_query="funny sci-fi comedy",
		search_strategy="filter",
	)
	engine = _engine_with_intent(fake_store, local_embedder, delay, intent)
	fake_store.scroll_results = [_payload("a")]
	movies, returned = engine.search_with_intent(SearchRequest(query="funny sci-fi from 2010 2015"))

	assert returned is intent
	assert [m.id for m in movies] == ["a"]
	assert fake_store.calls_named("search") == []
	conditions = fake_store.calls_named("scroll")[0]["filter"].must
	assert conditions[0].match.any == ["Comedy", "Sci-Fi"]
	assert conditions[1].range.gte == 2010
	assert conditions[2].range.lte == 2015


def test_explicit_request_filters_win_over_intent(fake_store, local_embedder, delay):
	intent = QueryIntent("filter", 0.9, IntentEntities(genres=["comedy"], keywords=["wedding"]), "neutral", "", "filter")
	engine = _engine_with_intent(fake_store, local_embedder, delay, intent)
	fake_store.search_results = [(_payload("a"), 0.9)]
	engine.search_with_intent(SearchRequest(query="funny wedding", genres=["Drama"]))

	(call,) = fake_store.calls_named("search")
	assert call["filter"].must[0].match.any == ["Drama"]


def test_vector_intent_searches_expanded_query(fake_store, local_embedder, delay):
	intent = QueryIntent("search", 0.7, IntentEntities(), "neutral", "space cosmic", "vector")
	engine = _engine_with_intent(fake_store, local_embedder, delay, intent)
	fake_store.search_results = [(_payload("a"), 0.9)]
	engine.search_with_intent(SearchRequest(query="space"))

	(call,) = fake_store.calls_named("search")
	assert np.allclose(call["vector"], local_embedder.embed("space cosmic"))
	assert call["filter"] is None


# End-to-end against an in-memory Qdrant collection

def test_exact_title_query_ranks_movie_first(seeded_engine):
	movies = seeded_engine.search(SearchRequest(query="inception", limit=5))

	assert 1 <= len(movies) <= 5
	assert movies[0].id == "m-1"
	assert movies[0].score == pytest.approx(1.0, abs=1e-4)
	assert all(m.score is not None and m.score >= 0.3 for m in movies)
	assert all("embedding" not in m.to_dict() for m in movies)


def test_filter_only_browse(seeded_engine):
	movies = seeded_engine.search(SearchRequest(genres=["Comedy"], year_from=2010, year_to=2015))

	assert {m.id for m in movies} == {"m-3", "m-4"}
	assert all(m.score is None for m in movies)
	assert all("score" not in m.to_dict() for m in movies)


def test_language_and_rating_filters(seeded_engine):
	assert [m.id for m in seeded_engine.search(SearchRequest(language="fr"))] == ["m-6"]
	high = seeded_engine.search(SearchRequest(min_rating=8.0))
	assert {m.id for m in high} == {"m-1", "m-5", "m-6"}


def test_filters_constrain_vector_search(seeded_engine):
	movies = seeded_engine.search(SearchRequest(query="inception", genres=["Horror"]))

	assert "m-1" not in {m.id for m in movies}
	assert all("Horror" in m.genres for m in movies)


def test_text_fallback_matches_description(seeded_engine):
	strict = SearchEngine(seeded_engine.store, seeded_engine.collection, seeded_engine.embedding_generator, score_threshold=0.9999)
	movies = strict.search(SearchRequest(query="vegas"))

	assert [m.id for m in movies] == ["m-2"]
	assert movies[0].score is None


def test_find_all_and_statistics_over_collection(seeded_engine):
	movies, total = seeded_engine.find_all(SearchRequest(genres=["Comedy"], limit=2))
	assert len(movies) == 2
	assert total == 5

	assert seeded_engine.get_all_genres() == ["Action", "Comedy", "Horror", "Romance", "Sci-Fi"]
	stats = seeded_engine.get_statistics()
	assert stats["movies"] == 7
	assert stats["languages"] == 2


@pytest.mark.parametrize("operation", [
	lambda engine: engine.search(SearchRequest(query="inception")),
	lambda engine: engine.search(SearchRequest(genres=["Comedy"])),
	lambda engine: engine.find_all(SearchRequest()),
	lambda engine: engine.get_all_genres(),
	lambda engine: engine.get_statistics(),
], ids=["vector", "browse", "find_all", "genres", "stats"])
def test_dropped_collection_is_reported_as_not_ready(seeded_engine, operation):
	seeded_engine.store.client.delete_collection("movies")

	with pytest.raises(CollectionNotReadyError):
		operation(seeded_engine)
	assert seeded_engine.collection.is_ready() is False
	with pytest.raises(CollectionNotReadyError):
		seeded_engine.search(SearchRequest(query="inception"))
