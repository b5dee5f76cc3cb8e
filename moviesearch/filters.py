"""
Filter construction.
Translates structured search parameters into Qdrant filter expressions.
"""

from typing import List, Optional, Sequence  # type hints

from qdrant_client import models  # native filter types

from .models import SearchRequest  # structured search parameters

# Payload keys used by conditions and indexes
TITLE_KEY = "title"
DESCRIPTION_KEY = "description"
GENRES_KEY = "genres"
YEAR_KEY = "release_year"
RATING_KEY = "rating"
LANGUAGE_KEY = "language"


def build_filter(request: SearchRequest) -> Optional[models.Filter]:
	"""
	Build a `must` conjunction with one condition per present field.
	Returns None when no field is set, meaning "no constraint".
	"""
	conditions: List[models.FieldCondition] = []

	genres = [g for g in (request.genres or []) if g]
	if genres:
		# any-of within the genre condition
		conditions.append(models.FieldCondition(key=GENRES_KEY, match=models.MatchAny(any=genres)))

	if request.year_from is not None:
		conditions.append(models.FieldCondition(key=YEAR_KEY, range=models.Range(gte=request.year_from)))

	if request.year_to is not None:
		conditions.append(models.FieldCondition(key=YEAR_KEY, range=models.Range(lte=request.year_to)))

	if request.min_rating is not None:
		conditions.append(models.FieldCondition(key=RATING_KEY, range=models.Range(gte=request.min_rating)))

	if request.language:
		conditions.append(models.FieldCondition(key=LANGUAGE_KEY, match=models.MatchValue(value=request.language)))

	return models.Filter(must=conditions) if conditions else None


def build_text_filter(base: Optional[models.Filter], tokens: Sequence[str]) -> Optional[models.Filter]:
	"""
	Augment `base` with OR-matched keyword conditions on title and description.
	Structured conditions stay mandatory; at least one keyword must match.
	"""
	keywords = [t for t in dict.fromkeys(tokens) if t]  # dedupe, keep order
	if not keywords:
		return base

	should: List[models.FieldCondition] = []
	phrase = " ".join(keywords)
	if len(keywords) > 1:
		should.append(models.FieldCondition(key=TITLE_KEY, match=models.MatchText(text=phrase)))
	for token in keywords:
		should.append(models.FieldCondition(key=TITLE_KEY, match=models.MatchText(text=token)))
		should.append(models.FieldCondition(key=DESCRIPTION_KEY, match=models.MatchText(text=token)))

	must = list(base.must) if base is not None and base.must else []
	return models.Filter(must=must or None, should=should)
