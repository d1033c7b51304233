"""MCP Prompts: pre-built interaction templates for diabetes-risk journeys."""

from __future__ import annotations

from fastmcp import FastMCP


def register_risk_prompts(mcp: FastMCP) -> None:
    """Register diabetes-risk MCP prompts."""

    @mcp.prompt()
    def diabetes_risk_check_prompt() -> str:
        """Prompt template for a first diabetes risk self-assessment."""
        return """I'd like to check my diabetes risk. Please:

1. Ask me for my age, BMI, fasting glucose and blood pressure
2. Optionally ask about pregnancies, insulin, skin thickness, family history and sleep
3. Run the assessment and explain my score and top risk factors
4. Give me the suggestions in plain language

Remind me that this is an educational estimate, not a diagnosis."""

    @mcp.prompt()
    def risk_progress_review_prompt(period_days: int = 90) -> str:
        """Prompt template for reviewing stored assessments over a period."""
        return f"""Let's review how my diabetes risk has changed over the last {period_days} days. I'd like to:

1. See my stored assessments, newest first
2. Know whether my risk is improving, stable or worsening
3. Understand which factors keep coming up
4. Get one or two concrete things to focus on next

Please be encouraging and remind me to talk to a healthcare professional."""
