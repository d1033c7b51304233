"""Prompt text for the personalised risk report narrative."""

from __future__ import annotations

from typing import Any

REPORT_TASK_INSTRUCTIONS = """\
## Task: Personalised Risk Summary

Write a brief, encouraging and personalised health summary from the \
assessment the user message describes.

- Keep the summary concise and positive
- End by reminding the user to consult a healthcare professional for medical advice
- IMPORTANT: include a disclaimer that this is a simulated prediction for \
educational purposes and not a real medical diagnosis

Respond with exactly: {"report": "<summary text>"}"""

FACTOR_EXPLANATION = (
    "This factor played a significant role in your assessment. Effectively "
    "managing this can have a positive impact on your overall health."
)

_METRIC_LABELS = {
    "age": "Age",
    "bmi": "BMI",
    "glucose": "Glucose (mg/dL)",
    "blood_pressure": "Blood pressure (mm Hg)",
    "pregnancies": "Pregnancies",
    "skin_thickness": "Skin thickness (mm)",
    "insulin": "Insulin (mu U/ml)",
    "diabetes_pedigree_function": "Diabetes pedigree function",
    "sleep_hours": "Sleep (hours/night)",
}


def build_report_prompt(context: dict[str, Any]) -> str:
    """Render the user message for a report from a privacy-filtered context.

    Only keys present in ``context`` are rendered, so the privacy policy
    decides what reaches the model.
    """
    lines = [
        f"Generate a brief, encouraging, and personalized health summary for "
        f"{context['patient_name']}.",
        "",
        f"Your simulated risk score is {context['risk_score']}/100. This score is "
        f"based on a formula that weighs several health factors. The model is "
        f"{context['confidence_score']}% confident in this assessment.",
    ]
    if context.get("risk_band"):
        lines.append(f"This places you in the {context['risk_band']} risk band.")

    lines += ["", "Here's a breakdown of your key risk factors and why they are important:"]
    factors = context.get("key_factors") or []
    if factors:
        lines += [f"- **{name}**: {FACTOR_EXPLANATION}" for name in factors]
    else:
        lines.append("- No single factor stood out as a major contributor.")

    lines += [
        "",
        "Here are some personalized suggestions based on your profile to help you "
        "improve your health:",
    ]
    lines += [f"- {s}" for s in context.get("health_suggestions") or []]

    metrics = context.get("metrics")
    if metrics:
        lines += ["", "The values you entered:"]
        lines += [
            f"- {_METRIC_LABELS.get(key, key)}: {value}"
            for key, value in metrics.items()
        ]

    return "\n".join(lines)
