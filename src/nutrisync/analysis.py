"""Meal photo analysis glue.

The analysis model itself is an external collaborator. Whatever it does,
a failed analysis becomes zero-valued placeholder facts so logging a meal
never fails because of it.
"""

import logging
import math
import re
from typing import Optional

from .errors import DataShapeError, RemoteStoreError
from .models import FoodFacts
from .sync.http_client import RemoteApiClient
from .sync.protocols import FoodAnalyzerProtocol

__all__ = ["analyze_food_image", "HttpFoodAnalyzer", "strip_data_url"]

logger = logging.getLogger(__name__)

_DATA_URL_PREFIX = re.compile(r"^data:image/(png|jpeg|jpg|webp);base64,")


def strip_data_url(image: str) -> str:
    """Drop a ``data:image/...;base64,`` prefix, leaving raw base64."""
    return _DATA_URL_PREFIX.sub("", image)


def analyze_food_image(analyzer: Optional[FoodAnalyzerProtocol], image: str) -> FoodFacts:
    """Run ``analyzer`` on a photo, falling back to placeholder facts on any failure."""
    if analyzer is None:
        return FoodFacts.placeholder()
    try:
        facts = analyzer.analyze(image)
    except Exception as e:
        logger.error(f"Food analysis error: {e}")
        return FoodFacts.placeholder()

    if not isinstance(facts, FoodFacts):
        logger.error(f"Food analysis returned {type(facts).__name__}, expected FoodFacts")
        return FoodFacts.placeholder()
    numbers = (facts.calories, facts.protein, facts.carbs, facts.fat, facts.confidence)
    if not all(isinstance(n, (int, float)) and math.isfinite(n) for n in numbers):
        logger.error(f"Food analysis returned non-finite facts: {facts!r}")
        return FoodFacts.placeholder()
    return facts


class HttpFoodAnalyzer:
    """Food analyzer backed by an HTTP analysis service.

    POSTs ``{"image": <base64>}`` to ``analyze/food`` and expects the
    FoodFacts JSON shape back. Non-food images come back as "Unknown" with
    zero values.
    """

    def __init__(self, client: RemoteApiClient):
        self.client = client

    def analyze(self, image: str) -> FoodFacts:
        """Analyze a photo.

        Raises:
            RemoteStoreError: On request failure
            DataShapeError: On a malformed response
        """
        response = self.client.request(
            "POST", "analyze/food", data={"image": strip_data_url(image)}, retry=False
        )
        if not response:
            raise RemoteStoreError("Empty response from analysis service")
        try:
            return FoodFacts.from_dict(response)
        except DataShapeError:
            logger.warning(f"Malformed analysis response: {response!r}")
            raise
