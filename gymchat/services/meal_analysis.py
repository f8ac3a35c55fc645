import logging
from typing import Awaitable, Callable, Sequence, Tuple

from gymchat.errors import AnalysisUnavailable, GymChatError
from gymchat.schemas.meal import MealAnalysis, parse_meal_analysis


logger = logging.getLogger(__name__)

# (name, call) where call(image_base64, mime_type) returns the raw reply text
Provider = Tuple[str, Callable[[str, str], Awaitable[str]]]

MIN_IMAGE_LENGTH = 100


class MealAnalyzer:
    """Try each AI provider in order and return the first reply that parses."""

    def __init__(self, providers: Sequence[Provider]) -> None:
        self._providers = list(providers)

    async def analyze(self, image_base64: str, mime_type: str) -> MealAnalysis:
        if not image_base64 or len(image_base64) < MIN_IMAGE_LENGTH:
            raise ValueError("Invalid image data. Please try uploading again.")
        last_error = "No AI provider configured"
        for name, call in self._providers:
            try:
                reply = await call(image_base64, mime_type)
                return parse_meal_analysis(reply, name)
            except GymChatError as exc:
                last_error = f"{name} failed: {exc}"
                logger.warning(last_error)
            except Exception as exc:
                # provider transports raise their own error types
                last_error = f"{name} failed: {exc}"
                logger.exception("Meal analysis provider %s raised", name)
        raise AnalysisUnavailable(last_error)
