"""MCP Prompts: pre-built interaction templates for diabetes self-management."""

from __future__ import annotations

from fastmcp import FastMCP


def register_health_prompts(mcp: FastMCP) -> None:
    """Register health domain MCP prompts."""

    @mcp.prompt()
    def daily_checkin_prompt() -> str:
        """Prompt template for a daily diabetes check-in."""
        return """Let's do my daily diabetes check-in. Please:

1. Show today's medication doses and which ones are still pending
2. Summarize my glucose readings and flag any alerts
3. Total what I've eaten today against my carb target
4. Tell me how my exercise minutes compare with my weekly goal

Finish with one concrete thing I can do before tonight."""

    @mcp.prompt()
    def glucose_review_prompt(days: int = 14) -> str:
        """Prompt template for reviewing glucose control over a period."""
        return f"""Please review my glucose control over the last {days} days. I'd like to:

1. See my average glucose and time in range
2. Know whether there is a dawn phenomenon or post-meal spikes
3. Understand how exercise and meals line up with my readings
4. Get my risk assessment and the recommendations that matter most

Explain it in plain language and be encouraging."""

    @mcp.prompt()
    def meal_photo_prompt(meal_type: str = "Lunch") -> str:
        """Prompt template for analyzing a meal photo."""
        return f"""I'm about to eat this {meal_type.lower()}. Please analyze the photo and tell me:

1. The estimated carbs, protein, fat and fiber
2. How it is likely to affect my blood sugar and when it will peak
3. Anything to watch for with my GLP-1 medication (fullness, nausea, slow digestion)
4. One or two simple changes that would make it more diabetes-friendly

Log it as my {meal_type.lower()} once you're done."""

    @mcp.prompt()
    def weekly_plan_prompt(carbs_target: int = 150) -> str:
        """Prompt template for planning a week of meals."""
        return f"""Help me plan my meals for the coming week with a daily carb target of {carbs_target}g.
Build the weekly meal plan, check its predicted glucose impact per day, and give me
the shopping list grouped by store section."""

    @mcp.prompt()
    def medication_review_prompt(period: str = "Month") -> str:
        """Prompt template for reviewing medication adherence."""
        return f"""Review my medication adherence for this {period.lower()}. For each medication,
show the adherence percentage and current streak, point out days where I missed
doses, and suggest reminder-time changes if a pattern shows up."""
