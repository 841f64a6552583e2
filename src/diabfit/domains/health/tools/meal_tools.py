"""MCP tools for meals: scoring, glucose prediction, planning, logging and photo analysis.

The scoring and planning tools are stateless and always available; meal
logging and photo analysis need the encrypted health data bank.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from diabfit.core.llm.errors import InvalidImageError, VisionError
from diabfit.core.storage.models import Ingredient, Meal
from diabfit.core.storage.repository import meal_to_dict
from diabfit.domains.health.domain_logic.health_models import MEAL_TYPES
from diabfit.domains.health.domain_logic.meal_analysis import analysis_to_meal
from diabfit.domains.health.domain_logic.meal_planning import (
    DEFAULT_CARBS_TARGET,
    PlannedMeal,
    daily_totals,
    shopping_list,
    suggest_meals as catalog_suggestions,
    weekly_meal_plan as build_weekly_plan,
)
from diabfit.domains.health.domain_logic.nutrition import (
    assess_meal,
    personalized_recommendations,
    predict_glucose_impact as predict_impact,
)
from diabfit.domains.health.tools.common import (
    ToolInputError,
    check_choice,
    dump,
    error_json,
    invalid_input,
    parse_date,
    parse_datetime,
)

if TYPE_CHECKING:
    from diabfit.core.audit.logger import AuditLogger
    from diabfit.core.storage.repository import HealthRepository
    from diabfit.domains.health.domain_logic.meal_analysis import MealAnalyzer

logger = logging.getLogger(__name__)


def _build_meal(
    *,
    name: str,
    meal_type: str,
    carbs: float,
    protein: float,
    fat: float,
    fiber: float,
    calories: float,
    sugar: float,
    sodium: float,
    ingredients: list[dict[str, Any]] | None,
    timestamp: datetime,
    user_id: str = "",
    notes: str = "",
) -> Meal:
    check_choice("meal_type", meal_type, MEAL_TYPES)
    for label, value in (
        ("carbs", carbs), ("protein", protein), ("fat", fat), ("fiber", fiber),
        ("calories", calories), ("sugar", sugar), ("sodium", sodium),
    ):
        if value < 0:
            raise ToolInputError(f"{label} must not be negative")
    try:
        parsed_ingredients = [Ingredient.from_dict(i) for i in ingredients or []]
    except (TypeError, ValueError) as exc:
        raise ToolInputError(f"Invalid ingredient: {exc}") from exc
    return Meal(
        id="",
        user_id=user_id,
        name=name,
        meal_type=meal_type,
        timestamp=timestamp,
        ingredients=parsed_ingredients,
        carbs=carbs,
        protein=protein,
        fat=fat,
        fiber=fiber,
        calories=calories,
        sugar=sugar,
        sodium=sodium,
        notes=notes or None,
    )


# ---------------------------------------------------------------------------
# Stateless tools
# ---------------------------------------------------------------------------

def register_meal_scoring_tools(mcp: FastMCP) -> None:
    """Register meal scoring and planning tools that need no storage."""

    @mcp.tool
    async def score_meal(
        ctx: Context,
        name: str,
        carbs: float,
        protein: float = 0.0,
        fat: float = 0.0,
        fiber: float = 0.0,
        calories: float = 0.0,
        sugar: float = 0.0,
        sodium: float = 0.0,
        meal_type: str = "Lunch",
        ingredients: list[dict[str, Any]] | None = None,
    ) -> str:
        """Score a meal for nutrition and diabetic friendliness (0-100 each).

        Also returns the predicted glucose impact, recommendations,
        improvements and lower-carb / higher-protein / plant-based alternatives.

        Args:
            name: Meal name.
            carbs: Carbohydrates in grams.
            protein: Protein in grams.
            fat: Fat in grams.
            fiber: Fiber in grams.
            calories: Total calories.
            sugar: Sugar in grams.
            sodium: Sodium in milligrams.
            meal_type: 'Breakfast', 'Lunch', 'Dinner' or 'Snack'.
            ingredients: Optional list of {name, quantity, unit, calories, carbs,
                protein, fat, fiber, category}.
        """
        try:
            meal = _build_meal(
                name=name, meal_type=meal_type, carbs=carbs, protein=protein, fat=fat,
                fiber=fiber, calories=calories, sugar=sugar, sodium=sodium,
                ingredients=ingredients, timestamp=datetime.now(),
            )
        except ToolInputError as exc:
            return invalid_input(exc)
        return dump({"status": "ok", "meal": name, **assess_meal(meal).to_dict()})

    @mcp.tool
    async def predict_glucose_impact(
        ctx: Context,
        carbs: float,
        protein: float = 0.0,
        fat: float = 0.0,
        fiber: float = 0.0,
        calories: float = 0.0,
        name: str = "Meal",
        ingredients: list[dict[str, Any]] | None = None,
    ) -> str:
        """Predict the blood glucose rise, time to peak and duration for a meal.

        Args:
            carbs: Carbohydrates in grams.
            protein: Protein in grams.
            fat: Fat in grams.
            fiber: Fiber in grams.
            calories: Total calories (improves confidence when given).
            name: Meal name; juices and smoothies spike faster.
            ingredients: Optional ingredient list, as for score_meal.
        """
        try:
            meal = _build_meal(
                name=name, meal_type="Snack", carbs=carbs, protein=protein, fat=fat,
                fiber=fiber, calories=calories, sugar=0.0, sodium=0.0,
                ingredients=ingredients, timestamp=datetime.now(),
            )
        except ToolInputError as exc:
            return invalid_input(exc)
        return dump({"status": "ok", **predict_impact(meal).to_dict()})

    @mcp.tool
    async def suggest_meals(
        ctx: Context,
        target_carbs: float | None = None,
        meal_type: str = "",
        limit: int = 5,
    ) -> str:
        """Suggest diabetes-friendly meals near a carb target.

        Args:
            target_carbs: Desired carbs in grams (matches within 10 g). Empty for any.
            meal_type: 'Breakfast', 'Lunch', 'Dinner' or 'Snack'.
            limit: Maximum suggestions.
        """
        suggestions = catalog_suggestions(meal_type or None, target_carbs, limit=limit)
        return dump({
            "status": "ok",
            "target_carbs": target_carbs,
            "suggestions": [m.to_dict() for m in suggestions],
        })

    @mcp.tool
    async def weekly_meal_plan(
        ctx: Context,
        start_date: str = "",
        carbs_target: float = DEFAULT_CARBS_TARGET,
        include_shopping_list: bool = True,
    ) -> str:
        """Build a 7-day plan of three meals and a snack per day.

        Args:
            start_date: First day (YYYY-MM-DD). Defaults to today.
            carbs_target: Daily carbohydrate target in grams.
            include_shopping_list: Add the aggregated shopping list.
        """
        try:
            start = parse_date(start_date)
        except ToolInputError as exc:
            return invalid_input(exc)
        if carbs_target <= 0:
            return error_json("invalid_input", "carbs_target must be positive")

        plan = build_weekly_plan(start, carbs_target=carbs_target)
        days = [
            {
                "date": day.isoformat(),
                "meals": [m.to_dict() for m in meals],
                "totals": daily_totals(meals).to_dict(),
            }
            for day, meals in plan.items()
        ]
        payload: dict[str, Any] = {"status": "ok", "carbs_target": carbs_target, "days": days}
        if include_shopping_list:
            all_meals = [m for meals in plan.values() for m in meals]
            payload["shopping_list"] = [i.to_dict() for i in shopping_list(all_meals)]
        return dump(payload)


# ---------------------------------------------------------------------------
# Storage-backed tools
# ---------------------------------------------------------------------------

def _load_image(image_base64: str, image_path: str) -> bytes:
    if image_path:
        path = Path(image_path).expanduser()
        if not path.is_file():
            raise InvalidImageError(f"Image file not found: {path}")
        try:
            return path.read_bytes()
        except OSError as exc:
            raise InvalidImageError(f"Could not read image file: {path}") from exc
    if not image_base64:
        raise InvalidImageError("Provide image_base64 or image_path.")
    if image_base64.startswith("data:"):
        image_base64 = image_base64.split(",", 1)[-1]
    try:
        return base64.b64decode(image_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidImageError("image_base64 is not valid base64.") from exc


def register_meal_tools(
    mcp: FastMCP,
    repository: HealthRepository,
    user_id: str,
    *,
    analyzer: MealAnalyzer | None = None,
    provider_name: str = "",
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register meal logging, history and photo analysis tools."""

    @mcp.tool
    async def log_meal(
        ctx: Context,
        name: str,
        meal_type: str,
        carbs: float,
        protein: float = 0.0,
        fat: float = 0.0,
        fiber: float = 0.0,
        calories: float = 0.0,
        sugar: float = 0.0,
        sodium: float = 0.0,
        ingredients: list[dict[str, Any]] | None = None,
        eaten_at: str = "",
        notes: str = "",
    ) -> str:
        """Log a meal with its nutrition totals.

        The predicted glucose impact is stored with the meal.

        Args:
            name: Meal name.
            meal_type: 'Breakfast', 'Lunch', 'Dinner' or 'Snack'.
            carbs: Carbohydrates in grams.
            protein: Protein in grams.
            fat: Fat in grams.
            fiber: Fiber in grams.
            calories: Total calories.
            sugar: Sugar in grams.
            sodium: Sodium in milligrams.
            ingredients: Optional ingredient list, as for score_meal.
            eaten_at: When the meal was eaten (ISO 8601). Defaults to now.
            notes: Free-text notes (encrypted at rest).
        """
        try:
            meal = _build_meal(
                name=name, meal_type=meal_type, carbs=carbs, protein=protein, fat=fat,
                fiber=fiber, calories=calories, sugar=sugar, sodium=sodium,
                ingredients=ingredients, timestamp=parse_datetime(eaten_at),
                user_id=user_id, notes=notes,
            )
        except ToolInputError as exc:
            return invalid_input(exc)

        impact = predict_impact(meal)
        meal.glucose_impact = round(impact.predicted_spike)
        meal_id = repository.save_meal(meal)
        if audit_logger is not None:
            audit_logger.log_tool_call("log_meal", {"meal_type": meal_type}, record_id=meal_id)
        return dump({
            "status": "saved",
            "meal_id": meal_id,
            "glucose_impact": impact.to_dict(),
        })

    @mcp.tool
    async def list_meals(ctx: Context, days: int = 7, limit: int = 50) -> str:
        """List logged meals, newest first.

        Args:
            days: How many days back to look (default: 7).
            limit: Maximum meals to return.
        """
        since = datetime.now() - timedelta(days=days)
        meals = repository.get_meals(user_id, since=since, limit=limit)
        if audit_logger is not None:
            audit_logger.log_data_access(tool_name="list_meals", record_type="meals", count=len(meals))
        return dump({"status": "ok", "count": len(meals), "meals": [meal_to_dict(m) for m in meals]})

    @mcp.tool
    async def meal_insights(ctx: Context, date: str = "") -> str:
        """Daily nutrition totals for one day plus recommendations from recent meals.

        Args:
            date: Day to total (YYYY-MM-DD). Defaults to today.
        """
        try:
            day = parse_date(date)
        except ToolInputError as exc:
            return invalid_input(exc)
        start = datetime.combine(day, datetime.min.time())
        days_meals = repository.get_meals(
            user_id, since=start, until=start + timedelta(days=1) - timedelta(seconds=1)
        )
        recent = repository.get_meals(user_id, limit=30)
        planned = [PlannedMeal.from_meal(m) for m in days_meals]
        return dump({
            "status": "ok",
            "date": day.isoformat(),
            "meals_logged": len(days_meals),
            "totals": daily_totals(planned).to_dict(),
            "recommendations": [r.to_dict() for r in personalized_recommendations(recent)],
        })

    @mcp.tool
    async def analyze_meal_photo(
        ctx: Context,
        image_base64: str = "",
        image_path: str = "",
        meal_type: str = "Lunch",
        log_as_meal: bool = True,
        use_cache: bool = True,
    ) -> str:
        """Analyze a meal photo for nutrition, glycemic impact and GLP-1 considerations.

        The photo is sent to the configured vision model unless an identical
        photo was analyzed recently. Disclosures are recorded in the audit log.

        Args:
            image_base64: The photo as base64 (a data URL is accepted).
            image_path: Path to a photo on this machine, instead of image_base64.
            meal_type: 'Breakfast', 'Lunch', 'Dinner' or 'Snack'.
            log_as_meal: Also log the analyzed meal with its nutrition totals.
            use_cache: Reuse a cached analysis of the same photo.
        """
        if analyzer is None:
            return error_json(
                "api_not_configured",
                "Vision API key not configured. Please check your configuration.",
            )
        try:
            check_choice("meal_type", meal_type, MEAL_TYPES)
        except ToolInputError as exc:
            return invalid_input(exc)

        start_time = time.monotonic()
        try:
            image_bytes = _load_image(image_base64, image_path)
            outcome = await analyzer.analyze(image_bytes, use_cache=use_cache)
        except VisionError as exc:
            elapsed_ms = (time.monotonic() - start_time) * 1000
            logger.warning("Meal photo analysis failed: %s", exc.kind)
            if audit_logger is not None:
                audit_logger.log_tool_call(
                    "analyze_meal_photo",
                    {"meal_type": meal_type},
                    llm_provider=provider_name or None,
                    duration_ms=elapsed_ms,
                    status="failure",
                    error_type=exc.kind,
                )
            return json.dumps(exc.to_dict())

        elapsed_ms = (time.monotonic() - start_time) * 1000
        meal_id = None
        if log_as_meal:
            meal = analysis_to_meal(
                outcome.result,
                user_id=user_id,
                meal_type=meal_type,
                timestamp=datetime.now(),
                analysis_id=outcome.analysis_id,
            )
            meal.glucose_impact = round(predict_impact(meal).predicted_spike)
            meal_id = repository.save_meal(meal)

        if audit_logger is not None:
            audit_logger.log_tool_call(
                "analyze_meal_photo",
                {"meal_type": meal_type, "image_hash": outcome.image_hash},
                llm_provider=provider_name or None,
                llm_disclosed=not outcome.cached,
                record_id=outcome.analysis_id,
                duration_ms=elapsed_ms,
                metadata={"cached": outcome.cached},
            )

        return dump({
            "status": "ok",
            "analysis_id": outcome.analysis_id,
            "cached": outcome.cached,
            "meal_id": meal_id,
            "analysis": outcome.result.to_payload(),
        })

    @mcp.tool
    async def meal_analysis_usage(ctx: Context) -> str:
        """Photo analysis usage: count, tokens, average confidence and estimated cost."""
        if analyzer is None:
            return error_json(
                "api_not_configured",
                "Vision API key not configured. Please check your configuration.",
            )
        return dump({
            "status": "ok",
            **analyzer.usage_estimate(),
            "statistics": analyzer.statistics(),
        })

    @mcp.tool
    async def meal_analysis_history(ctx: Context, limit: int = 20) -> str:
        """Recent photo analyses: dish, calories, confidence and scores.

        Args:
            limit: Maximum entries to return.
        """
        if analyzer is None:
            return error_json(
                "api_not_configured",
                "Vision API key not configured. Please check your configuration.",
            )
        history = analyzer.history(limit=limit)
        return dump({"status": "ok", "count": len(history), "analyses": history})
