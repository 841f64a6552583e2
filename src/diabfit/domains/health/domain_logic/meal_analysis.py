"""Meal photo analysis with a vision-language model.

The model is asked for one JSON object (keys in camelCase) describing the
meal, its diabetic impact and GLP-1 considerations. Results are validated,
cached by image hash in the encrypted store, and summarized for usage and
history reporting.
"""

from __future__ import annotations

import base64
import hashlib
import io
import json
import logging
import re
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from diabfit.core.llm.client import VisionClient
from diabfit.core.llm.errors import DecodingError, InvalidAnalysisDataError, InvalidImageError
from diabfit.core.llm.response import extract_json_object
from diabfit.core.storage.models import Meal, StoredMealAnalysis
from diabfit.core.storage.repository import HealthRepository

logger = logging.getLogger(__name__)

# Approximate cost in USD of one analysis call.
COST_PER_ANALYSIS_USD = 0.02


# ---------------------------------------------------------------------------
# Result schema
# ---------------------------------------------------------------------------

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MealIdentification(_CamelModel):
    primary_dishes: list[str]
    ingredients: list[str]
    cooking_methods: list[str]
    estimated_portion_sizes: dict[str, str]
    preparation_notes: str | None = None


class MacroDetail(_CamelModel):
    grams: float
    percentage: float


class FiberDetail(_CamelModel):
    grams: float


class Macronutrients(_CamelModel):
    carbohydrates: MacroDetail
    protein: MacroDetail
    fat: MacroDetail
    fiber: FiberDetail


class Micronutrients(_CamelModel):
    sodium: str
    potassium: str
    calcium: str
    iron: str
    vitamin_c: str
    vitamin_d: str | None = None
    magnesium: str | None = None


class SugarBreakdown(_CamelModel):
    total: str
    added: str
    natural: str


class NutritionalAnalysis(_CamelModel):
    total_calories: int
    macronutrients: Macronutrients
    micronutrients: Micronutrients
    sugar: SugarBreakdown
    cholesterol: str | None = None
    saturated_fat: str | None = None
    trans_fat: str | None = None


class GlycemicValue(_CamelModel):
    value: int
    category: str
    reasoning: str | None = None


class BloodSugarImpact(_CamelModel):
    peak_time: str
    expected_rise: str
    duration: str
    factors: list[str] | None = None


class CarbQuality(_CamelModel):
    complex_carbs: str
    simple_carbs: str
    fiber_ratio: str
    net_carbs: str | None = None


class InsulinResponse(_CamelModel):
    estimated: str
    timing: str
    factors: list[str]


class DiabeticAnalysis(_CamelModel):
    glycemic_index: GlycemicValue
    glycemic_load: GlycemicValue
    estimated_blood_sugar_impact: BloodSugarImpact
    carb_quality: CarbQuality
    insulin_response: InsulinResponse | None = None


class GastroparesisRisk(_CamelModel):
    risk: str
    reasoning: str
    recommendations: list[str] | None = None


class SatietyFactor(_CamelModel):
    score: int
    reasoning: str
    duration: str | None = None


class DigestionTime(_CamelModel):
    estimated: str
    impact: str
    considerations: list[str] | None = None


class NauseaRisk(_CamelModel):
    risk: str
    factors: list[str]


class GLP1Considerations(_CamelModel):
    gastroparesis: GastroparesisRisk
    satiety_factor: SatietyFactor
    digestion_time: DigestionTime
    nausea: NauseaRisk | None = None
    recommendations: list[str]


class HealthScore(_CamelModel):
    overall: float
    diabetic_friendly: float
    glp1_compatible: float
    nutritional_density: float | None = None
    reasoning: str


class AnalysisRecommendations(_CamelModel):
    portion_adjustments: list[str]
    timing_advice: list[str]
    modifications: list[str]
    blood_sugar_management: list[str]
    medication_timing: list[str] | None = None


class MealAnalysisResult(_CamelModel):
    """Full analysis of one meal photo."""

    id: str | None = None
    timestamp: datetime | None = None
    api_version: str | None = None
    processing_time: int | None = None  # total tokens used

    meal_identification: MealIdentification
    nutritional_analysis: NutritionalAnalysis
    diabetic_analysis: DiabeticAnalysis
    glp1_considerations: GLP1Considerations
    health_score: HealthScore
    recommendations: AnalysisRecommendations
    warnings: list[str]
    confidence: float
    analysis_notes: str | None = None

    @property
    def dish_name(self) -> str:
        dishes = self.meal_identification.primary_dishes
        return dishes[0] if dishes else "Unknown Meal"

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


# Example answer embedded in the prompt; also a valid result on its own.
SAMPLE_ANALYSIS: dict[str, Any] = {
    "mealIdentification": {
        "primaryDishes": ["Grilled chicken breast", "Brown rice", "Steamed broccoli"],
        "ingredients": ["chicken breast", "brown rice", "broccoli", "olive oil", "garlic"],
        "cookingMethods": ["grilled", "steamed"],
        "estimatedPortionSizes": {
            "Grilled chicken breast": "6 oz (size of 2 decks of cards)",
            "Brown rice": "1 cup (size of tennis ball)",
        },
        "preparationNotes": "Visual cues about freshness, cooking level, seasoning",
    },
    "nutritionalAnalysis": {
        "totalCalories": 450,
        "macronutrients": {
            "carbohydrates": {"grams": 35.5, "percentage": 31.6},
            "protein": {"grams": 28.2, "percentage": 25.1},
            "fat": {"grams": 22.1, "percentage": 44.2},
            "fiber": {"grams": 8.3},
        },
        "micronutrients": {
            "sodium": "850mg",
            "potassium": "420mg",
            "calcium": "150mg",
            "iron": "3.2mg",
            "vitaminC": "25mg",
            "vitaminD": "2.1mcg",
            "magnesium": "45mg",
        },
        "sugar": {"total": "12.5g", "added": "2.1g", "natural": "10.4g"},
        "cholesterol": "65mg",
        "saturatedFat": "6.2g",
        "transFat": "0.1g",
    },
    "diabeticAnalysis": {
        "glycemicIndex": {"value": 45, "category": "Low", "reasoning": "High fiber and protein content"},
        "glycemicLoad": {"value": 16, "category": "Medium", "reasoning": "Moderate carb content with good fiber"},
        "estimatedBloodSugarImpact": {
            "peakTime": "45-60 minutes",
            "expectedRise": "30-45 mg/dL",
            "duration": "2-3 hours",
            "factors": ["fiber content", "protein ratio", "fat content"],
        },
        "carbQuality": {
            "complexCarbs": "75%",
            "simpleCarbs": "25%",
            "fiberRatio": "23%",
            "netCarbs": "27.2g",
        },
        "insulinResponse": {
            "estimated": "moderate",
            "timing": "gradual over 2-3 hours",
            "factors": ["protein content", "fat content", "fiber"],
        },
    },
    "glp1Considerations": {
        "gastroparesis": {
            "risk": "Low",
            "reasoning": "Well-cooked proteins, moderate fiber, no high-fat content",
            "recommendations": ["Chew thoroughly", "Eat slowly"],
        },
        "satietyFactor": {
            "score": 8,
            "reasoning": "High protein and fiber content will enhance GLP-1's satiety effects",
            "duration": "4-6 hours",
        },
        "digestionTime": {
            "estimated": "3-4 hours",
            "impact": "May extend satiety period due to GLP-1 effects",
            "considerations": ["Delayed gastric emptying possible"],
        },
        "nausea": {
            "risk": "Low",
            "factors": ["Low fat content", "Not overly spiced", "Familiar foods"],
        },
        "recommendations": [
            "Eat slowly to allow GLP-1 satiety signals to register",
            "Stop eating when 80% full due to delayed satiety signals",
            "Monitor for delayed gastric emptying symptoms",
            "Ideal meal timing 2-3 hours before next injection",
        ],
    },
    "healthScore": {
        "overall": 7.5,
        "diabeticFriendly": 8.0,
        "glp1Compatible": 8.5,
        "nutritionalDensity": 7.8,
        "reasoning": "Well-balanced meal with good protein-to-carb ratio, moderate glycemic impact",
    },
    "recommendations": {
        "portionAdjustments": [
            "Consider reducing rice portion by 25% to lower carb load",
            "Add more non-starchy vegetables for volume and nutrients",
        ],
        "timingAdvice": [
            "Best consumed 2-3 hours before next GLP-1 injection",
            "Allow 20-30 minutes eating time for proper satiety signaling",
            "Avoid eating within 2 hours of bedtime",
        ],
        "modifications": [
            "Replace white rice with cauliflower rice to reduce carbs by 80%",
            "Add avocado slices for healthy fats and satiety",
            "Include a small side salad to increase fiber",
        ],
        "bloodSugarManagement": [
            "Check glucose 1-2 hours post-meal for peak response",
            "Consider pre-meal glucose reading for comparison",
            "Log meal timing and glucose response for pattern recognition",
        ],
        "medicationTiming": [
            "If taking rapid-acting insulin, dose for 27g net carbs",
            "GLP-1 users: monitor for extended satiety effects",
            "Consider meal timing with other diabetes medications",
        ],
    },
    "warnings": [
        "High sodium content may cause water retention and affect blood pressure",
        "Monitor for delayed gastric emptying if on GLP-1 medications",
    ],
    "confidence": 0.85,
    "analysisNotes": (
        "Analysis based on visual assessment. Actual nutritional content may vary "
        "based on preparation methods and exact ingredients used."
    ),
}

ANALYSIS_PROMPT = (
    "Analyze this meal image with extreme detail for a person with diabetes who may be "
    "using GLP-1 medications (like Ozempic, Wegovy, Mounjaro). You are a certified "
    "nutritionist and diabetes educator with expertise in GLP-1 medications.\n\n"
    "Provide a comprehensive analysis in the following JSON format. Be extremely accurate "
    "with portion sizes by comparing to common objects (credit card, tennis ball, deck of "
    "cards, etc.).\n\n"
    f"{json.dumps(SAMPLE_ANALYSIS, indent=2)}\n\n"
    "Be extremely detailed and specific. Estimate portion sizes carefully by comparing to "
    "common objects. Consider visual cues for cooking methods, ingredient freshness, and "
    "preparation style. For GLP-1 users, focus on gastroparesis risk, satiety enhancement, "
    "and optimal timing considerations. Provide actionable, specific recommendations."
)


# ---------------------------------------------------------------------------
# Parsing and validation
# ---------------------------------------------------------------------------

def validate_analysis(result: MealAnalysisResult) -> None:
    """Reject analyses whose key numbers are out of range.

    Raises:
        InvalidAnalysisDataError: On the first failing check.
    """
    if not 0.0 <= result.confidence <= 1.0:
        raise InvalidAnalysisDataError("Invalid confidence score")
    if result.nutritional_analysis.total_calories <= 0:
        raise InvalidAnalysisDataError("Invalid calorie data")
    if not 0 <= result.diabetic_analysis.glycemic_index.value <= 100:
        raise InvalidAnalysisDataError("Invalid glycemic index")
    if not 0.0 <= result.health_score.overall <= 10.0:
        raise InvalidAnalysisDataError("Invalid health score")


def parse_analysis(
    content: str,
    *,
    model: str,
    total_tokens: int,
    now: datetime | None = None,
) -> MealAnalysisResult:
    """Decode a model response into a validated :class:`MealAnalysisResult`.

    Raises:
        InvalidResponseError: If the response holds no JSON object.
        DecodingError: If the object does not match the result schema.
        InvalidAnalysisDataError: If values are out of range.
    """
    data = extract_json_object(content)
    try:
        result = MealAnalysisResult.model_validate(data)
    except ValidationError as exc:
        raise DecodingError(f"{exc.error_count()} schema errors") from exc

    result.id = str(uuid.uuid4())
    result.timestamp = now or datetime.now()
    result.api_version = model
    result.processing_time = total_tokens
    validate_analysis(result)
    return result


# ---------------------------------------------------------------------------
# Image preprocessing
# ---------------------------------------------------------------------------

@dataclass
class PreparedImage:
    """A JPEG ready to send, plus the hash of the original bytes."""

    jpeg_bytes: bytes
    width: int
    height: int
    image_hash: str

    @property
    def base64(self) -> str:
        return base64.b64encode(self.jpeg_bytes).decode("ascii")


def image_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def prepare_image(data: bytes, *, max_dimension: int = 2048, quality: int = 80) -> PreparedImage:
    """Convert to RGB, shrink so the longest side is at most ``max_dimension``, encode JPEG.

    Raises:
        InvalidImageError: If the bytes are not a readable image.
    """
    if not data:
        raise InvalidImageError()
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except Image.DecompressionBombError as exc:
        raise InvalidImageError("Image is too large to process.") from exc
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidImageError() from exc

    if img.mode in ("RGBA", "LA", "P"):
        if img.mode == "P":
            img = img.convert("RGBA")
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.getchannel("A"))
        img = background
    elif img.mode != "RGB":
        img = img.convert("RGB")

    if max(img.size) > max_dimension:
        img.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

    buffered = io.BytesIO()
    img.save(buffered, format="JPEG", quality=quality)
    return PreparedImage(
        jpeg_bytes=buffered.getvalue(),
        width=img.width,
        height=img.height,
        image_hash=image_hash(data),
    )


# ---------------------------------------------------------------------------
# Conversion to a loggable meal
# ---------------------------------------------------------------------------

_AMOUNT = re.compile(r"[-+]?\d*\.?\d+")


def parse_amount(text: str | None) -> float:
    """Leading number of a string such as ``'850mg'`` or ``'12.5 g'``; 0.0 if none."""
    if not text:
        return 0.0
    match = _AMOUNT.search(text)
    return float(match.group()) if match else 0.0


def analysis_to_meal(
    result: MealAnalysisResult,
    *,
    user_id: str,
    meal_type: str,
    timestamp: datetime,
    analysis_id: str | None = None,
) -> Meal:
    nutrition = result.nutritional_analysis
    macros = nutrition.macronutrients
    return Meal(
        id="",
        user_id=user_id,
        name=", ".join(result.meal_identification.primary_dishes) or "Analyzed Meal",
        meal_type=meal_type,
        timestamp=timestamp,
        carbs=macros.carbohydrates.grams,
        protein=macros.protein.grams,
        fat=macros.fat.grams,
        fiber=macros.fiber.grams,
        calories=float(nutrition.total_calories),
        sugar=parse_amount(nutrition.sugar.total),
        sodium=parse_amount(nutrition.micronutrients.sodium),
        notes=result.analysis_notes,
        photo_analysis_id=analysis_id or result.id,
    )


# ---------------------------------------------------------------------------
# Analyzer service
# ---------------------------------------------------------------------------

@dataclass
class AnalysisOutcome:
    analysis_id: str
    result: MealAnalysisResult
    image_hash: str
    cached: bool


class MealAnalyzer:
    """Analyzes meal photos through a :class:`VisionClient` with a hash cache.

    Usage::

        analyzer = MealAnalyzer(VisionClient(provider), repository, user_id)
        outcome = await analyzer.analyze(image_bytes)
    """

    def __init__(
        self,
        client: VisionClient,
        repository: HealthRepository,
        user_id: str,
        *,
        max_dimension: int = 2048,
        jpeg_quality: int = 80,
        cache_max_age_days: int = 30,
        cache_max_entries: int = 500,
    ) -> None:
        self._client = client
        self._repo = repository
        self._user_id = user_id
        self._max_dimension = max_dimension
        self._jpeg_quality = jpeg_quality
        self._cache_max_age = timedelta(days=cache_max_age_days)
        self._cache_max_entries = cache_max_entries

    async def analyze(
        self,
        image_bytes: bytes,
        *,
        use_cache: bool = True,
        now: datetime | None = None,
    ) -> AnalysisOutcome:
        """Analyze one photo, returning a cached result for an identical image.

        Raises:
            VisionError: For image, provider and parsing failures.
        """
        now = now or datetime.now()
        prepared = prepare_image(
            image_bytes, max_dimension=self._max_dimension, quality=self._jpeg_quality
        )

        if use_cache:
            hit = self._repo.get_meal_analysis_by_hash(
                self._user_id, prepared.image_hash, since=now - self._cache_max_age
            )
            if hit is not None:
                logger.info("Meal analysis cache hit for %s", prepared.image_hash[:12])
                return AnalysisOutcome(
                    analysis_id=hit.id,
                    result=MealAnalysisResult.model_validate(hit.payload),
                    image_hash=prepared.image_hash,
                    cached=True,
                )

        response = await self._client.analyze(ANALYSIS_PROMPT, prepared.base64)
        result = parse_analysis(
            response.content,
            model=response.model,
            total_tokens=response.total_tokens,
            now=now,
        )

        analysis_id = self._repo.save_meal_analysis(StoredMealAnalysis(
            id=result.id or "",
            user_id=self._user_id,
            image_hash=prepared.image_hash,
            timestamp=now,
            payload=result.to_payload(),
            model=response.model,
            confidence=result.confidence,
            total_tokens=response.total_tokens,
        ))
        self._repo.record_analysis_usage(
            self._user_id,
            total_tokens=response.total_tokens,
            confidence=result.confidence,
            at=now,
        )
        self.cleanup_cache(now=now)
        return AnalysisOutcome(
            analysis_id=analysis_id,
            result=result,
            image_hash=prepared.image_hash,
            cached=False,
        )

    def cleanup_cache(self, *, now: datetime | None = None) -> int:
        """Drop expired analyses and trim the cache when it is over its entry limit."""
        return self._repo.trim_meal_analyses(
            older_than=(now or datetime.now()) - self._cache_max_age,
            max_entries=self._cache_max_entries,
        )

    def usage_estimate(self) -> dict[str, Any]:
        usage = self._repo.analysis_usage(self._user_id)
        total = usage["total_analyses"]
        return {
            "total_analyses": total,
            "tokens_used": usage["total_tokens"],
            "average_confidence": round(usage["average_confidence"], 3),
            "last_analysis": usage["last_analysis"],
            "estimated_cost_usd": round(total * COST_PER_ANALYSIS_USD, 2),
        }

    def _results(self, limit: int) -> list[tuple[StoredMealAnalysis, MealAnalysisResult]]:
        pairs = []
        for stored in self._repo.get_meal_analyses(self._user_id, limit=limit):
            try:
                pairs.append((stored, MealAnalysisResult.model_validate(stored.payload)))
            except ValidationError:
                logger.warning("Skipping unreadable cached analysis %s", stored.id)
        return pairs

    def history(self, *, limit: int = 50) -> list[dict[str, Any]]:
        """Newest-first summary rows for cached analyses."""
        return [
            {
                "id": stored.id,
                "timestamp": stored.timestamp.isoformat(timespec="seconds"),
                "dish_name": result.dish_name,
                "calories": result.nutritional_analysis.total_calories,
                "confidence": result.confidence,
                "diabetic_score": result.health_score.diabetic_friendly,
                "glp1_score": result.health_score.glp1_compatible,
            }
            for stored, result in self._results(limit)
        ]

    def statistics(self, *, limit: int = 500) -> dict[str, Any]:
        """Averages and most common dishes across cached analyses."""
        results = [r for _, r in self._results(limit)]
        if not results:
            return {
                "total_analyses": 0,
                "average_confidence": 0.0,
                "average_calories": 0.0,
                "average_diabetic_score": 0.0,
                "average_glp1_score": 0.0,
                "most_common_dishes": [],
                "nutritional_trends": {
                    "average_carbs": 0.0,
                    "average_protein": 0.0,
                    "average_fat": 0.0,
                    "average_fiber": 0.0,
                },
            }

        n = len(results)

        def avg(values) -> float:
            return round(sum(values) / n, 2)

        dishes = Counter(d for r in results for d in r.meal_identification.primary_dishes)
        return {
            "total_analyses": n,
            "average_confidence": avg(r.confidence for r in results),
            "average_calories": avg(r.nutritional_analysis.total_calories for r in results),
            "average_diabetic_score": avg(r.health_score.diabetic_friendly for r in results),
            "average_glp1_score": avg(r.health_score.glp1_compatible for r in results),
            "most_common_dishes": [d for d, _ in dishes.most_common(5)],
            "nutritional_trends": {
                "average_carbs": avg(
                    r.nutritional_analysis.macronutrients.carbohydrates.grams for r in results
                ),
                "average_protein": avg(
                    r.nutritional_analysis.macronutrients.protein.grams for r in results
                ),
                "average_fat": avg(r.nutritional_analysis.macronutrients.fat.grams for r in results),
                "average_fiber": avg(
                    r.nutritional_analysis.macronutrients.fiber.grams for r in results
                ),
            },
        }
