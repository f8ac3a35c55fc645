import json
import re
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from gymchat.errors import MalformedResponse


_TRAILING_COMMA = re.compile(r",\s*([}\]])")


class MealAnalysis(BaseModel):
    """Nutrition estimate for one meal photo, in the fixed provider contract."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    food_name: str = Field(alias="foodName", min_length=1)
    ingredients: List[str]
    portion_size: str = Field(alias="portionSize")
    weight: float = Field(ge=0)
    calories: float = Field(ge=0)
    protein: float = Field(ge=0)
    carbs: float = Field(ge=0)
    fats: float = Field(ge=0)
    fiber: float = Field(ge=0)
    sugar: float = Field(ge=0)
    health_score: int = Field(alias="healthScore", ge=0, le=100)
    advice: str
    provider: Optional[str] = None


def parse_meal_analysis(text: str, provider: str) -> MealAnalysis:
    """Pull the JSON object out of a provider reply and validate it.

    Providers wrap the object in prose or code fences and sometimes leave
    trailing commas, so the outermost ``{...}`` is cut out and those commas are
    dropped before parsing. Anything that still does not match the contract
    raises ``MalformedResponse``.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise MalformedResponse(f"No JSON object in reply from {provider}")
    raw = _TRAILING_COMMA.sub(r"\1", text[start:end + 1])
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedResponse(f"Invalid JSON from {provider}: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise MalformedResponse(f"Expected a JSON object from {provider}")
    try:
        analysis = MealAnalysis.model_validate(payload)
    except ValidationError as exc:
        raise MalformedResponse(f"Analysis from {provider} does not match the contract: {exc.errors()}") from exc
    return analysis.model_copy(update={"provider": provider})
