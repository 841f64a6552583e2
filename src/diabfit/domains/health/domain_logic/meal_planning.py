"""Meal planning: daily totals, catalog suggestions, weekly plans, shopping lists."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any

from diabfit.core.storage.models import Meal
from diabfit.domains.health.domain_logic.health_models import GLYCEMIC_INDEX_LEVELS

# Rough estimate: 1 g of carbohydrate raises glucose by about 3 mg/dL.
MG_DL_PER_GRAM_CARB = 3

DEFAULT_CARBS_TARGET = 150.0
DEFAULT_PROTEIN_TARGET = 80.0
DEFAULT_CALORIES_TARGET = 1800.0

# Carb tolerance when matching a catalog meal to a target.
CARB_MATCH_TOLERANCE = 10.0

MEAL_TIMES: dict[str, time] = {
    "Breakfast": time(8, 0),
    "Lunch": time(12, 30),
    "Snack": time(15, 0),
    "Dinner": time(18, 0),
}

SHOPPING_CATEGORIES = ("Protein", "Vegetables", "Fruits", "Grains", "Dairy", "Pantry", "Other")


@dataclass(frozen=True)
class RecommendedMeal:
    name: str
    description: str
    carbs: float
    protein: float
    calories: int
    diabetes_friendly: bool
    glycemic_index: str  # 'Low' | 'Medium' | 'High'

    @property
    def glycemic_rank(self) -> int:
        return GLYCEMIC_INDEX_LEVELS.index(self.glycemic_index)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "carbs": self.carbs,
            "protein": self.protein,
            "calories": self.calories,
            "diabetes_friendly": self.diabetes_friendly,
            "glycemic_index": self.glycemic_index,
        }


RECOMMENDED_MEALS: tuple[RecommendedMeal, ...] = (
    RecommendedMeal(
        "Grilled Chicken Salad",
        "Mixed greens with grilled chicken, avocado, and olive oil dressing",
        15, 35, 320, True, "Low",
    ),
    RecommendedMeal(
        "Quinoa Bowl",
        "Quinoa with roasted vegetables and tahini dressing",
        45, 12, 380, True, "Medium",
    ),
    RecommendedMeal(
        "Salmon with Broccoli",
        "Baked salmon with steamed broccoli and brown rice",
        30, 40, 420, True, "Low",
    ),
    RecommendedMeal(
        "Greek Yogurt Parfait",
        "Plain Greek yogurt with berries and nuts",
        20, 15, 180, True, "Low",
    ),
    RecommendedMeal(
        "Vegetable Stir-Fry",
        "Mixed vegetables with tofu in a light sauce",
        25, 18, 280, True, "Low",
    ),
    RecommendedMeal(
        "Turkey and Avocado Wrap",
        "Whole wheat wrap with turkey, avocado, and vegetables",
        35, 25, 350, True, "Medium",
    ),
    RecommendedMeal(
        "Lentil Soup",
        "Hearty lentil soup with vegetables and herbs",
        40, 20, 300, True, "Medium",
    ),
    RecommendedMeal(
        "Egg and Vegetable Scramble",
        "Scrambled eggs with spinach, tomatoes, and peppers",
        8, 20, 220, True, "Low",
    ),
)


@dataclass
class PlannedMeal:
    name: str
    meal_type: str
    carbs: float
    protein: float
    calories: int
    scheduled_time: datetime
    notes: str | None = None

    @property
    def glucose_impact(self) -> int:
        return int(self.carbs * MG_DL_PER_GRAM_CARB)

    @classmethod
    def from_meal(cls, meal: Meal) -> PlannedMeal:
        return cls(
            name=meal.name,
            meal_type=meal.meal_type,
            carbs=meal.carbs,
            protein=meal.protein,
            calories=int(meal.calories),
            scheduled_time=meal.timestamp,
            notes=meal.notes,
        )

    @classmethod
    def from_recommendation(
        cls, meal: RecommendedMeal, meal_type: str, scheduled_time: datetime
    ) -> PlannedMeal:
        return cls(
            name=meal.name,
            meal_type=meal_type,
            carbs=meal.carbs,
            protein=meal.protein,
            calories=meal.calories,
            scheduled_time=scheduled_time,
            notes=meal.description,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "meal_type": self.meal_type,
            "carbs": self.carbs,
            "protein": self.protein,
            "calories": self.calories,
            "scheduled_time": self.scheduled_time.isoformat(timespec="seconds"),
            "notes": self.notes,
            "glucose_impact": self.glucose_impact,
        }


# ---------------------------------------------------------------------------
# Daily nutrition
# ---------------------------------------------------------------------------

@dataclass
class DailyNutrition:
    carbs: float
    protein: float
    calories: float
    predicted_glucose_impact: int
    carbs_target: float = DEFAULT_CARBS_TARGET
    protein_target: float = DEFAULT_PROTEIN_TARGET
    calories_target: float = DEFAULT_CALORIES_TARGET

    def to_dict(self) -> dict[str, Any]:
        return {
            "carbs": round(self.carbs, 1),
            "protein": round(self.protein, 1),
            "calories": round(self.calories, 1),
            "predicted_glucose_impact": self.predicted_glucose_impact,
            "targets": {
                "carbs": self.carbs_target,
                "protein": self.protein_target,
                "calories": self.calories_target,
            },
        }


def daily_glucose_impact(meals: list[PlannedMeal]) -> int:
    """Carb-driven glucose impact for a day; spreading over 4+ meals softens it."""
    total_carbs = sum(m.carbs for m in meals)
    timing_factor = 0.8 if len(meals) > 3 else 1.0
    return int(total_carbs * MG_DL_PER_GRAM_CARB * timing_factor)


def daily_totals(meals: list[PlannedMeal]) -> DailyNutrition:
    return DailyNutrition(
        carbs=sum(m.carbs for m in meals),
        protein=sum(m.protein for m in meals),
        calories=float(sum(m.calories for m in meals)),
        predicted_glucose_impact=daily_glucose_impact(meals),
    )


# ---------------------------------------------------------------------------
# Suggestions and plans
# ---------------------------------------------------------------------------

def suggest_meals(
    meal_type: str | None = None,
    target_carbs: float | None = None,
    *,
    limit: int = 5,
) -> list[RecommendedMeal]:
    """Catalog meals within 10 g of ``target_carbs``, friendliest and lowest GI first.

    The catalog is not split by meal type, so ``meal_type`` does not narrow
    the result.
    """
    suggestions = list(RECOMMENDED_MEALS)
    if target_carbs is not None:
        suggestions = [m for m in suggestions if abs(m.carbs - target_carbs) <= CARB_MATCH_TOLERANCE]
    suggestions.sort(key=lambda m: (not m.diabetes_friendly, m.glycemic_rank))
    return suggestions[:limit]


def daily_meal_plan(day: date, *, carbs_target: float = DEFAULT_CARBS_TARGET) -> list[PlannedMeal]:
    """Three meals and a snack; carbs split over four slots, snack at half."""
    per_meal = carbs_target / 4
    targets = {
        "Breakfast": per_meal,
        "Lunch": per_meal,
        "Dinner": per_meal,
        "Snack": per_meal * 0.5,
    }
    plan: list[PlannedMeal] = []
    for meal_type, target in targets.items():
        suggestions = suggest_meals(meal_type, target)
        if not suggestions:
            continue
        plan.append(PlannedMeal.from_recommendation(
            suggestions[0], meal_type, datetime.combine(day, MEAL_TIMES[meal_type])
        ))
    return plan


def weekly_meal_plan(
    start: date, *, carbs_target: float = DEFAULT_CARBS_TARGET
) -> dict[date, list[PlannedMeal]]:
    """Seven consecutive daily plans starting at ``start``."""
    return {
        start + timedelta(days=i): daily_meal_plan(start + timedelta(days=i), carbs_target=carbs_target)
        for i in range(7)
    }


# ---------------------------------------------------------------------------
# Shopping list
# ---------------------------------------------------------------------------

@dataclass
class ShoppingListItem:
    name: str
    quantity: float
    unit: str
    category: str = "Other"

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "quantity": self.quantity, "unit": self.unit, "category": self.category}


# Keyword in the meal name -> ingredients to buy per serving.
_MEAL_INGREDIENTS: tuple[tuple[str, tuple[tuple[str, float, str, str], ...]], ...] = (
    ("chicken", (("Chicken Breast", 1, "lb", "Protein"), ("Mixed Greens", 1, "bag", "Vegetables"))),
    ("salmon", (("Salmon Fillet", 1, "lb", "Protein"), ("Broccoli", 1, "head", "Vegetables"))),
    ("quinoa", (("Quinoa", 1, "cup", "Grains"), ("Tahini", 2, "tbsp", "Pantry"))),
    ("yogurt", (("Greek Yogurt", 1, "cup", "Dairy"), ("Mixed Berries", 0.5, "cup", "Fruits"))),
    ("stir-fry", (("Tofu", 1, "block", "Protein"), ("Mixed Vegetables", 1, "bag", "Vegetables"))),
    ("turkey", (("Sliced Turkey", 0.25, "lb", "Protein"), ("Whole Wheat Wraps", 1, "pack", "Grains"))),
    ("lentil", (("Dried Lentils", 1, "cup", "Pantry"), ("Carrots", 2, "each", "Vegetables"))),
    ("egg", (("Eggs", 3, "each", "Protein"), ("Spinach", 1, "bag", "Vegetables"))),
)


def ingredients_for(meal: PlannedMeal) -> list[ShoppingListItem]:
    name = meal.name.lower()
    for keyword, items in _MEAL_INGREDIENTS:
        if keyword in name:
            return [ShoppingListItem(*item) for item in items]
    return []


def shopping_list(meals: list[PlannedMeal]) -> list[ShoppingListItem]:
    """Aggregate ingredient quantities by name, grouped by shopping category."""
    items: dict[str, ShoppingListItem] = {}
    for meal in meals:
        for ingredient in ingredients_for(meal):
            existing = items.get(ingredient.name)
            if existing is None:
                items[ingredient.name] = ingredient
            else:
                existing.quantity += ingredient.quantity
    return sorted(items.values(), key=lambda i: (SHOPPING_CATEGORIES.index(i.category), i.name))
