"""Tests for heuristic meal scoring and glucose impact prediction."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from diabfit.core.storage.models import Ingredient, Meal
from diabfit.domains.health.domain_logic.nutrition import (
    assess_meal,
    diabetic_friendliness,
    high_protein_alternative,
    low_carb_alternative,
    meal_patterns,
    nutritional_score,
    personalized_recommendations,
    plant_based_alternative,
    predict_glucose_impact,
    prediction_confidence,
    time_to_spike,
)

NOW = datetime(2026, 3, 11, 12, 0)


def _chicken_bowl(**overrides) -> Meal:
    defaults = dict(
        id="bowl",
        user_id="u",
        name="Chicken Bowl",
        meal_type="Lunch",
        timestamp=NOW,
        ingredients=[
            Ingredient(name="Chicken breast", calories=200, protein=28, fat=6, category="Protein"),
            Ingredient(name="Brown rice", calories=180, carbs=35, fiber=3, category="Grains"),
            Ingredient(name="Broccoli", calories=50, fiber=5, protein=2, category="Vegetables"),
        ],
        carbs=35, protein=30, fat=12, fiber=8, sugar=4, sodium=900, calories=450,
    )
    defaults.update(overrides)
    return Meal(**defaults)


def _pasta(**overrides) -> Meal:
    defaults = dict(
        id="pasta",
        user_id="u",
        name="Pasta",
        meal_type="Dinner",
        timestamp=NOW,
        ingredients=[
            Ingredient(name="White pasta", calories=400, carbs=60, protein=6, fat=2,
                       fiber=1.5, category="Grains"),
            Ingredient(name="Tomato sauce", calories=80, carbs=10, protein=2, fat=2,
                       fiber=0.5, category="Vegetables"),
        ],
        carbs=70, protein=8, fat=4, fiber=2, sugar=12, sodium=1300, calories=650,
    )
    defaults.update(overrides)
    return Meal(**defaults)


class TestScores:
    def test_balanced_meal_scores_high(self):
        assert nutritional_score(_chicken_bowl()) == 96
        assert diabetic_friendliness(_chicken_bowl()) == 100  # clamped

    def test_heavy_meal_scores_low(self):
        assert nutritional_score(_pasta()) == 34
        assert diabetic_friendliness(_pasta()) == 35

    def test_scores_stay_in_range(self):
        junk = _pasta(carbs=150, sugar=80, sodium=5000, ingredients=[])
        assert nutritional_score(junk) >= 0
        assert diabetic_friendliness(junk) >= 0


class TestGlucoseImpact:
    def test_balanced_meal(self):
        impact = predict_glucose_impact(_chicken_bowl())
        assert impact.predicted_spike == pytest.approx(24.5 * 2.8)
        assert impact.time_to_spike == 95
        assert impact.duration == 120
        assert impact.confidence == pytest.approx(0.86)
        assert "High fiber content (reduces spike)" in impact.factors

    def test_heavy_meal(self):
        impact = predict_glucose_impact(_pasta())
        assert impact.predicted_spike == pytest.approx(67.2 * 2.8)
        assert impact.time_to_spike == 60
        assert impact.duration == 150
        assert impact.confidence == pytest.approx(0.8)
        assert impact.factors == [
            "High carbohydrate content",
            "Added sugars (faster absorption)",
            "Refined carbohydrates (faster absorption)",
        ]

    def test_spike_never_negative(self):
        impact = predict_glucose_impact(_chicken_bowl(carbs=2))
        assert impact.predicted_spike == 0.0

    def test_juice_speeds_spike(self):
        meal = _pasta(ingredients=[Ingredient(name="Orange juice", carbs=26, category="Fruits")])
        assert time_to_spike(meal) == 45

    def test_zero_calories_does_not_divide(self):
        meal = _chicken_bowl(calories=0)
        assert 0.3 <= prediction_confidence(meal) <= 0.95


class TestAssessment:
    def test_recommendations_for_heavy_dinner(self):
        assessment = assess_meal(_pasta())
        titles = [r.title for r in assessment.recommendations]
        assert titles == [
            "Reduce Carbohydrates",
            "Add More Fiber",
            "Increase Protein",
            "Consider Earlier Dinner",
            "Consider Smaller Portions",
        ]
        assert len(assessment.improvements) == 5
        assert [a.name for a in assessment.alternatives] == [
            "Pasta (Low Carb)",
            "Pasta (High Protein)",
            "Pasta (Plant-Based)",
        ]

    def test_to_dict_rounds(self):
        payload = assess_meal(_chicken_bowl()).to_dict()
        assert payload["meal_id"] == "bowl"
        assert payload["glucose_impact"]["predicted_spike_mg_dl"] == 68.6
        assert payload["alternatives"][-1]["ingredients"][0] == "Tofu"


class TestAlternatives:
    def test_low_carb_swaps_grains(self):
        alt = low_carb_alternative(_pasta())
        assert alt.ingredients[0].name == "Cauliflower Rice"
        assert alt.ingredients[0].category == "Vegetables"
        assert alt.carbs == pytest.approx(22.0)
        assert alt.sugar == 0.0
        assert alt.id == ""

    def test_high_protein_adds_yogurt(self):
        alt = high_protein_alternative(_pasta())
        assert alt.ingredients[-1].name == "Greek Yogurt"
        assert alt.protein == pytest.approx(25.0)

    def test_plant_based_only_swaps_chicken(self):
        alt = plant_based_alternative(_chicken_bowl())
        assert [i.name for i in alt.ingredients] == ["Tofu", "Brown rice", "Broccoli"]
        assert alt.ingredients[0].protein == pytest.approx(28 * 0.9)


class TestHistory:
    def test_no_meals(self):
        assert meal_patterns([]) is None
        assert personalized_recommendations([]) == []

    def test_patterns_use_recent_window(self):
        meals = [
            _pasta(id=str(i), carbs=100 if i < 10 else 40, timestamp=NOW - timedelta(days=40 - i))
            for i in range(40)
        ]
        patterns = meal_patterns(meals, window=30)
        assert patterns.average_carbs == pytest.approx(40.0)

    def test_personalized_recommendations(self):
        meals = [
            _pasta(id=str(h), carbs=60, fiber=2, timestamp=NOW.replace(hour=h))
            for h in (7, 12, 19)
        ]
        titles = [r.title for r in personalized_recommendations(meals)]
        assert titles == [
            "Reduce Daily Carb Intake",
            "Increase Daily Fiber",
            "Establish Regular Meal Times",
        ]
