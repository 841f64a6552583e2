"""Heuristic meal scoring for diabetes management.

All scores are fixed-threshold weighted sums: the same meal always gets the
same numbers. Nothing here models physiology; the glucose "prediction" is a
rule of thumb built from net carbohydrates.
"""

from __future__ import annotations

import statistics
from dataclasses import dataclass, field, replace
from typing import Any

from diabfit.core.storage.models import Ingredient, Meal

# Substrings that mark an ingredient as generally diabetes friendly.
DIABETIC_FRIENDLY_FOODS = (
    "salmon", "chicken", "turkey", "eggs", "tofu",
    "spinach", "broccoli", "cauliflower", "asparagus", "kale",
    "avocado", "nuts", "seeds", "olive oil",
    "berries", "apple", "citrus",
    "quinoa", "brown rice", "oats",
)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def is_diabetic_friendly(ingredient: Ingredient) -> bool:
    name = ingredient.name.lower()
    return any(food in name for food in DIABETIC_FRIENDLY_FOODS)


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------

def nutritional_score(meal: Meal) -> float:
    """Overall nutrition quality, 0-100 (50 is neutral)."""
    score = 50.0

    if meal.protein >= 20:
        score += 15
    elif meal.protein >= 10:
        score += 10

    if meal.fiber >= 10:
        score += 15
    elif meal.fiber >= 5:
        score += 10

    if meal.carbs <= 30:
        score += 10
    elif meal.carbs <= 45:
        score += 5
    elif meal.carbs > 60:
        score -= 10

    if meal.sugar <= 10:
        score += 10
    elif meal.sugar > 25:
        score -= 15

    if meal.sodium <= 600:
        score += 5
    elif meal.sodium > 1200:
        score -= 10

    # Variety bonus
    score += len({i.category for i in meal.ingredients}) * 2

    return _clamp(score, 0, 100)


def diabetic_friendliness(meal: Meal) -> float:
    """How well a meal suits blood-sugar control, 0-100."""
    score = 50.0

    if meal.carbs <= 20:
        score += 20
    elif meal.carbs <= 30:
        score += 15
    elif meal.carbs <= 45:
        score += 10
    else:
        score -= 15

    if meal.fiber >= 8:
        score += 15
    elif meal.fiber >= 5:
        score += 10

    if meal.protein >= 15:
        score += 15
    elif meal.protein >= 10:
        score += 10

    if meal.sugar <= 5:
        score += 15
    elif meal.sugar <= 10:
        score += 10
    elif meal.sugar > 20:
        score -= 20

    if 5 <= meal.fat <= 15:
        score += 10

    score += sum(1 for i in meal.ingredients if is_diabetic_friendly(i)) * 3

    return _clamp(score, 0, 100)


# ---------------------------------------------------------------------------
# Glucose impact
# ---------------------------------------------------------------------------

@dataclass
class GlucoseImpact:
    """Rule-of-thumb post-meal glucose response."""

    predicted_spike: float  # mg/dL
    time_to_spike: int  # minutes
    duration: int  # minutes
    confidence: float
    factors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "predicted_spike_mg_dl": round(self.predicted_spike, 1),
            "time_to_spike_minutes": self.time_to_spike,
            "duration_minutes": self.duration,
            "confidence": round(self.confidence, 2),
            "factors": list(self.factors),
        }


def net_carb_impact(meal: Meal) -> float:
    """Carbs left after fiber, protein and fat slow-down effects."""
    return max(0.0, meal.carbs - meal.fiber * 0.6 - meal.protein * 0.15 - meal.fat * 0.1)


def time_to_spike(meal: Meal) -> int:
    minutes = 60
    if meal.fiber > 5:
        minutes += 15
    if meal.fat > 10:
        minutes += 10
    if meal.protein > 15:
        minutes += 10
    if any("juice" in i.name.lower() or "smoothie" in i.name.lower() for i in meal.ingredients):
        minutes -= 15
    return int(_clamp(minutes, 30, 120))


def spike_duration(meal: Meal) -> int:
    minutes = 120
    if meal.carbs > 45:
        minutes += 30
    if meal.fat > 15:
        minutes += 20
    if meal.fiber > 8:
        minutes -= 15
    return int(_clamp(minutes, 90, 180))


def prediction_confidence(meal: Meal) -> float:
    confidence = 0.7

    count = len(meal.ingredients)
    if count <= 5:
        confidence += 0.1
    elif count > 10:
        confidence -= 0.1

    confidence += sum(1 for i in meal.ingredients if is_diabetic_friendly(i)) * 0.02

    # Balanced meals are more predictable; no calories means no ratio.
    if meal.calories > 0:
        carb_ratio = meal.carbs / meal.calories * 100
        if 40 <= carb_ratio <= 60:
            confidence += 0.05

    return _clamp(confidence, 0.3, 0.95)


def glucose_factors(meal: Meal) -> list[str]:
    factors: list[str] = []
    if meal.carbs > 30:
        factors.append("High carbohydrate content")
    if meal.fiber > 5:
        factors.append("High fiber content (reduces spike)")
    if meal.protein > 15:
        factors.append("High protein content (slows absorption)")
    if meal.fat > 10:
        factors.append("Fat content (slows absorption)")
    if meal.sugar > 10:
        factors.append("Added sugars (faster absorption)")
    if any("white" in i.name.lower() or "refined" in i.name.lower() for i in meal.ingredients):
        factors.append("Refined carbohydrates (faster absorption)")
    return factors


def predict_glucose_impact(meal: Meal) -> GlucoseImpact:
    return GlucoseImpact(
        predicted_spike=net_carb_impact(meal) * 2.8,
        time_to_spike=time_to_spike(meal),
        duration=spike_duration(meal),
        confidence=prediction_confidence(meal),
        factors=glucose_factors(meal),
    )


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

@dataclass
class Recommendation:
    """An actionable suggestion shown alongside a meal or history."""

    type: str  # 'nutrition' | 'timing' | 'portion'
    title: str
    description: str
    priority: str  # 'high' | 'medium' | 'low'
    estimated_benefit: str
    actionable: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "actionable": self.actionable,
            "estimated_benefit": self.estimated_benefit,
        }


def meal_recommendations(meal: Meal) -> list[Recommendation]:
    recs: list[Recommendation] = []
    if meal.carbs > 45:
        recs.append(Recommendation(
            type="nutrition",
            title="Reduce Carbohydrates",
            description="Consider reducing carbs to under 45g per meal for better glucose control",
            priority="high",
            estimated_benefit="May reduce post-meal glucose spike by 20-30mg/dL",
        ))
    if meal.fiber < 5:
        recs.append(Recommendation(
            type="nutrition",
            title="Add More Fiber",
            description="Include more vegetables or whole grains to increase fiber content",
            priority="medium",
            estimated_benefit="Fiber helps slow glucose absorption and improves satiety",
        ))
    if meal.protein < 15:
        recs.append(Recommendation(
            type="nutrition",
            title="Increase Protein",
            description="Add lean protein to help with glucose control and satiety",
            priority="medium",
            estimated_benefit="Protein helps stabilize blood sugar and reduces hunger",
        ))
    if meal.meal_type == "Dinner" and meal.carbs > 30:
        recs.append(Recommendation(
            type="timing",
            title="Consider Earlier Dinner",
            description="Eating dinner earlier may help with overnight glucose control",
            priority="low",
            estimated_benefit="May improve morning glucose levels",
        ))
    if meal.calories > 600:
        recs.append(Recommendation(
            type="portion",
            title="Consider Smaller Portions",
            description="Large meals can cause bigger glucose spikes",
            priority="medium",
            estimated_benefit="Smaller portions lead to more stable glucose levels",
        ))
    return recs


def meal_improvements(meal: Meal) -> list[str]:
    improvements: list[str] = []
    if meal.carbs > 45:
        improvements.append("Replace refined grains with whole grains or vegetables")
    if meal.fiber < 5:
        improvements.append("Add a side salad or steamed vegetables")
    if meal.protein < 15:
        improvements.append("Include lean protein like chicken, fish, or tofu")
    if meal.sugar > 15:
        improvements.append("Reduce added sugars and choose fresh fruits over dried")
    if meal.sodium > 800:
        improvements.append("Use herbs and spices instead of salt for flavoring")
    if sum(1 for i in meal.ingredients if i.category == "Vegetables") < 2:
        improvements.append("Add more non-starchy vegetables for nutrients and fiber")
    return improvements


# ---------------------------------------------------------------------------
# Alternatives
# ---------------------------------------------------------------------------

def _rebuild(meal: Meal, ingredients: list[Ingredient], suffix: str, note: str) -> Meal:
    # Ingredients carry no sugar or sodium, so the rebuilt totals drop them.
    return replace(
        meal,
        id="",
        name=f"{meal.name} ({suffix})",
        ingredients=ingredients,
        calories=float(int(sum(i.calories for i in ingredients))),
        carbs=sum(i.carbs for i in ingredients),
        protein=sum(i.protein for i in ingredients),
        fat=sum(i.fat for i in ingredients),
        fiber=sum(i.fiber for i in ingredients),
        sugar=0.0,
        sodium=0.0,
        notes=note,
        glucose_impact=None,
        photo_analysis_id=None,
    )


def low_carb_alternative(meal: Meal) -> Meal:
    """Swap every grain for cauliflower rice."""
    ingredients = [
        replace(
            i,
            name="Cauliflower Rice",
            calories=i.calories * 0.3,
            carbs=i.carbs * 0.2,
            fiber=i.fiber * 1.5,
            category="Vegetables",
        )
        if i.category == "Grains" else i
        for i in meal.ingredients
    ]
    return _rebuild(meal, ingredients, "Low Carb", "Lower carb alternative")


GREEK_YOGURT = Ingredient(
    name="Greek Yogurt",
    quantity=100,
    unit="g",
    calories=100,
    carbs=6,
    protein=17,
    fat=0,
    fiber=0,
    category="Dairy",
)


def high_protein_alternative(meal: Meal) -> Meal:
    """Add a 100 g serving of Greek yogurt."""
    ingredients = [*meal.ingredients, replace(GREEK_YOGURT)]
    return _rebuild(meal, ingredients, "High Protein", "Higher protein alternative")


def plant_based_alternative(meal: Meal) -> Meal:
    """Swap chicken for tofu."""
    ingredients = [
        replace(
            i,
            name="Tofu",
            calories=i.calories * 0.8,
            carbs=i.carbs + 2,
            protein=i.protein * 0.9,
            fat=i.fat * 1.2,
            fiber=i.fiber + 1,
        )
        if i.category == "Protein" and "chicken" in i.name.lower() else i
        for i in meal.ingredients
    ]
    return _rebuild(meal, ingredients, "Plant-Based", "Plant-based alternative")


def meal_alternatives(meal: Meal) -> list[Meal]:
    alternatives: list[Meal] = []
    if meal.carbs > 30:
        alternatives.append(low_carb_alternative(meal))
    if meal.protein < 20:
        alternatives.append(high_protein_alternative(meal))
    alternatives.append(plant_based_alternative(meal))
    return alternatives


# ---------------------------------------------------------------------------
# Full analysis
# ---------------------------------------------------------------------------

@dataclass
class MealAssessment:
    """Everything the scorer has to say about one meal."""

    meal_id: str
    nutritional_score: float
    diabetic_friendliness: float
    recommendations: list[Recommendation]
    improvements: list[str]
    alternatives: list[Meal]
    glucose_impact: GlucoseImpact

    def to_dict(self) -> dict[str, Any]:
        return {
            "meal_id": self.meal_id,
            "nutritional_score": round(self.nutritional_score, 1),
            "diabetic_friendliness": round(self.diabetic_friendliness, 1),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "improvements": list(self.improvements),
            "alternatives": [
                {
                    "name": a.name,
                    "notes": a.notes,
                    "calories": a.calories,
                    "carbs": round(a.carbs, 1),
                    "protein": round(a.protein, 1),
                    "fat": round(a.fat, 1),
                    "fiber": round(a.fiber, 1),
                    "ingredients": [i.name for i in a.ingredients],
                }
                for a in self.alternatives
            ],
            "glucose_impact": self.glucose_impact.to_dict(),
        }


def assess_meal(meal: Meal) -> MealAssessment:
    return MealAssessment(
        meal_id=meal.id,
        nutritional_score=nutritional_score(meal),
        diabetic_friendliness=diabetic_friendliness(meal),
        recommendations=meal_recommendations(meal),
        improvements=meal_improvements(meal),
        alternatives=meal_alternatives(meal),
        glucose_impact=predict_glucose_impact(meal),
    )


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

@dataclass
class MealPatterns:
    average_carbs: float
    average_protein: float
    fiber_intake: float
    irregular_meal_timing: bool


def meal_patterns(meals: list[Meal], *, window: int = 30) -> MealPatterns | None:
    """Eating patterns over the ``window`` most recent meals; None without meals."""
    recent = sorted(meals, key=lambda m: m.timestamp)[-window:]
    if not recent:
        return None
    hours = [float(m.timestamp.hour) for m in recent]
    return MealPatterns(
        average_carbs=statistics.fmean(m.carbs for m in recent),
        average_protein=statistics.fmean(m.protein for m in recent),
        fiber_intake=sum(m.fiber for m in recent),
        irregular_meal_timing=statistics.pvariance(hours) > 2.0,
    )


def personalized_recommendations(meals: list[Meal]) -> list[Recommendation]:
    patterns = meal_patterns(meals)
    if patterns is None:
        return []

    recs: list[Recommendation] = []
    if patterns.average_carbs > 50:
        recs.append(Recommendation(
            type="nutrition",
            title="Reduce Daily Carb Intake",
            description=(
                f"Your average carb intake is {int(patterns.average_carbs)}g per meal. "
                "Consider reducing to 30-45g."
            ),
            priority="high",
            estimated_benefit="Could improve overall glucose control",
        ))
    if patterns.fiber_intake < 25:
        recs.append(Recommendation(
            type="nutrition",
            title="Increase Daily Fiber",
            description="Aim for 25-35g of fiber daily to help with glucose control.",
            priority="medium",
            estimated_benefit="Better glucose stability and digestive health",
        ))
    if patterns.irregular_meal_timing:
        recs.append(Recommendation(
            type="timing",
            title="Establish Regular Meal Times",
            description="Consistent meal timing helps with glucose predictability.",
            priority="medium",
            estimated_benefit="More stable glucose patterns throughout the day",
        ))
    return recs
