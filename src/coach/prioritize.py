"""Keyword-driven prioritization of active resolutions into effort tiers."""

from typing import Optional

from .models import Resolution

CATEGORY_KEYWORDS = [
    ("health", ("exercise", "fitness", "health")),
    ("learning", ("learn", "study", "skill")),
    ("reading", ("read", "book")),
    ("career", ("work", "career", "business")),
    ("relationships", ("relation", "family", "social")),
    ("mindfulness", ("meditat", "mindful", "mental")),
]

IMMEDIATE_MIN_HOURS = 5
SECONDARY_MIN_HOURS = 2


def categorize(title: str) -> str:
    lowered = title.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(k in lowered for k in keywords):
            return category
    return "other"


def estimate_effort(measurable_criteria: str) -> str:
    """high for daily commitments, medium for weekly, low otherwise."""
    criteria = measurable_criteria.lower()
    if "daily" in criteria or "every day" in criteria:
        return "high"
    if "weekly" in criteria or "per week" in criteria:
        return "medium"
    return "low"


def supports(primary_title: str, dependent_title: str) -> bool:
    """Whether progress on ``primary`` plausibly supports ``dependent``.

    Asymmetric: exercise/sleep support learning/work; meditation supports
    anything that is not itself meditation.
    """
    a = primary_title.lower()
    b = dependent_title.lower()
    if ("exercise" in a or "sleep" in a) and ("learn" in b or "work" in b):
        return True
    if "meditat" in a and "meditat" not in b:
        return True
    return False


def analyze(resolutions: list[Resolution]) -> dict:
    by_category: dict[str, list[str]] = {}
    effort: dict[str, str] = {}
    for r in resolutions:
        by_category.setdefault(categorize(r.title), []).append(r.title)
        effort[r.id] = estimate_effort(r.measurable_criteria)

    dependencies = [
        (r1, r2)
        for r1 in resolutions
        for r2 in resolutions
        if r1.id != r2.id and supports(r1.title, r2.title)
    ]
    return {"by_category": by_category, "effort": effort, "dependencies": dependencies}


def allocate_hours(
    resolutions: list[Resolution], effort: dict[str, str], time_per_week: float, focus_area: str
) -> dict[str, tuple[float, str]]:
    """Weekly hours and reasoning per resolution id."""
    high_count = sum(1 for r in resolutions if effort[r.id] == "high")
    per_high = (time_per_week * 0.6) / max(high_count, 1)
    remaining = time_per_week * 0.4
    health_focus = "health" in focus_area.lower()

    allocation = {}
    for r in resolutions:
        tier = effort[r.id]
        if tier == "high":
            hours = per_high
            reasoning = "Daily or frequent commitment requires consistent time allocation"
        elif tier == "medium":
            hours = remaining / max(len(resolutions) - high_count, 1)
            reasoning = "Weekly commitment; balanced with other resolutions"
        else:
            hours = max(1, (remaining * 0.5) / len(resolutions))
            reasoning = "Lower frequency allows minimal touch-in to maintain progress"

        if health_focus and "exercise" in r.title.lower():
            hours = min(hours * 1.3, time_per_week)
            reasoning = "Increased allocation due to health focus area"

        allocation[r.id] = (round(hours, 1), reasoning)
    return allocation


def clarifying_questions(resolutions: list[Resolution], by_category: dict[str, list[str]]) -> list[str]:
    questions = []
    if "health" in by_category:
        questions.append("How much do health improvements impact your energy for other areas?")
    if "learning" in by_category:
        questions.append("Are any of your learning goals connected to your career or other resolutions?")
    if len(resolutions) > 3:
        questions.append("Are there any resolutions you could temporarily pause without causing setback?")
    questions.append('What would feel like "failure" vs "success" for this month?')
    questions.append("Are there external deadlines or commitments affecting your availability?")
    return questions


def _narrative(strategy: dict, focus_area: str) -> str:
    lines = [
        "## Your Resolution Strategy",
        "",
        f"**Focus Area:** {focus_area}",
        "",
        "**Tier System:**",
        f"- **Immediate Focus** ({len(strategy['immediate'])} resolutions): Your priority targets "
        "this period. Allocate peak energy here.",
        f"- **Secondary** ({len(strategy['secondary'])} resolutions): Important but require less "
        "focused effort. Maintain steady progress.",
        f"- **Maintenance** ({len(strategy['maintenance'])} resolutions): Keep momentum with "
        "minimal effort to prevent regression.",
        "",
        "**Approach:**",
        "This is a fluid prioritization system. Shift resolutions between tiers as life "
        "circumstances, momentum and progress on dependent resolutions change.",
        "",
        "**Key Principle:** Progress on maintenance items (even 15 minutes) prevents the "
        'psychological burden of "falling off." Consistency beats perfection.',
    ]
    if strategy["dependencies"]:
        lines += ["", "**Resolution Dependencies:**"]
        lines += [f'- "{d["primary"]}" supports "{d["dependent"]}"' for d in strategy["dependencies"]]
    return "\n".join(lines)


def build_strategy(
    resolutions: list[Resolution],
    time_per_week: float = 20,
    focus_area: str = "balanced growth",
    constraints: Optional[str] = None,
    ask_follow_up: bool = False,
) -> dict:
    """Bucket active resolutions into immediate/secondary/maintenance tiers."""
    analysis = analyze(resolutions)
    allocation = allocate_hours(resolutions, analysis["effort"], time_per_week, focus_area)

    strategy = {"immediate": [], "secondary": [], "maintenance": [], "dependencies": []}
    for r in resolutions:
        hours, reasoning = allocation[r.id]
        entry = {"resolutionId": r.id, "resolution": r.title, "effort": analysis["effort"][r.id]}
        if hours > IMMEDIATE_MIN_HOURS:
            strategy["immediate"].append({**entry, "reason": reasoning, "suggestedWeeklyHours": hours})
        elif hours > SECONDARY_MIN_HOURS:
            strategy["secondary"].append({**entry, "reason": reasoning, "suggestedWeeklyHours": hours})
        else:
            strategy["maintenance"].append(
                {
                    **entry,
                    "reason": "Maintain momentum with minimal effort to prevent losing progress",
                    "suggestedMinimalEffort": f"{round(hours * 60)} minutes per week",
                }
            )

    for primary, dependent in analysis["dependencies"]:
        strategy["dependencies"].append(
            {
                "primary": primary.title,
                "dependent": dependent.title,
                "reason": f'Progress on "{primary.title}" will support progress on "{dependent.title}"',
            }
        )

    strategy["categories"] = analysis["by_category"]
    strategy["constraints"] = constraints or "none specified"
    strategy["strategy"] = _narrative(strategy, focus_area)
    if ask_follow_up:
        strategy["questionsForClarification"] = clarifying_questions(resolutions, analysis["by_category"])
    return strategy
