"""Resolution analytics.

Nudge effectiveness (did check-ins lead to logged activity?) plus the
heuristic insights the coach can use to personalize its tone: when the user
is most active, weekly follow-through, streaks and sentiment trend. All of
it is derived from the update log and nudge history; nothing is stored.
"""

from datetime import datetime, timedelta
from typing import Optional

from shared_types import Sentiment

from .models import NudgeRecord, Resolution, Update, utcnow

RESPONSE_WINDOW = timedelta(hours=24)
RECENT_WINDOW = timedelta(days=7)
# Gap between updates that still counts as the same streak
STREAK_GAP = timedelta(days=2)

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
TIME_PERIODS = ("morning", "afternoon", "evening", "night")

MIN_TREND_UPDATES = 3
TREND_MARGIN = 0.1
MIN_PROMPT_DATA_POINTS = 10


def led_to_activity(nudge: NudgeRecord, updates: list[Update]) -> bool:
    """Whether any update landed within 24h after the nudge was delivered."""
    delivered = nudge.delivered_at or nudge.scheduled_at
    return any(delivered <= u.created_at <= delivered + RESPONSE_WINDOW for u in updates)


def nudge_response_rate(nudges: list[NudgeRecord], updates: list[Update]) -> float:
    """Fraction of nudges followed by an update within the response window."""
    if not nudges:
        return 0.0
    effective = sum(1 for n in nudges if led_to_activity(n, updates))
    return round(effective / len(nudges), 2)


def nudge_effectiveness(nudges: list[NudgeRecord], resolutions: list[Resolution]) -> dict:
    """Effectiveness summary overall and per nudge type, best type first.

    Each nudge is matched against the updates of the resolution it was about.
    """
    updates_by_resolution = {r.id: r.updates for r in resolutions}
    by_type: dict[str, dict[str, int]] = {}
    effective_total = 0

    for nudge in nudges:
        stats = by_type.setdefault(str(nudge.type), {"total": 0, "effective": 0})
        stats["total"] += 1
        if led_to_activity(nudge, updates_by_resolution.get(nudge.resolution_id, [])):
            stats["effective"] += 1
            effective_total += 1

    best = sorted(
        (
            {"type": t, "count": s["total"], "successRate": round(s["effective"] / s["total"], 2)}
            for t, s in by_type.items()
        ),
        key=lambda entry: (-entry["successRate"], entry["type"]),
    )
    return {
        "totalNudges": len(nudges),
        "nudgesLeadingToActivity": effective_total,
        "effectivenessRate": round(effective_total / len(nudges), 2) if nudges else 0.0,
        "bestNudgeTypes": best,
    }


# --- Insights ---


def _all_updates(resolutions: list[Resolution]) -> list[Update]:
    return [u for r in resolutions for u in r.updates]


def _percent(count: int, total: int) -> int:
    return round(count / total * 100)


def _time_period(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


def best_days(updates: list[Update]) -> list[dict]:
    """Update counts by weekday (UTC), busiest first. dayOfWeek 0 is Sunday."""
    if not updates:
        return []
    counts: dict[int, int] = {}
    for update in updates:
        day = (update.created_at.weekday() + 1) % 7
        counts[day] = counts.get(day, 0) + 1
    patterns = [
        {"dayOfWeek": day, "dayName": DAY_NAMES[day], "count": count, "percentage": _percent(count, len(updates))}
        for day, count in counts.items()
    ]
    return sorted(patterns, key=lambda p: (-p["count"], p["dayOfWeek"]))


def best_time_of_day(updates: list[Update]) -> list[dict]:
    """Update counts per part of the day (UTC hours), busiest first."""
    if not updates:
        return []
    counts = dict.fromkeys(TIME_PERIODS, 0)
    for update in updates:
        counts[_time_period(update.created_at.hour)] += 1
    patterns = [
        {"period": period, "count": count, "percentage": _percent(count, len(updates))}
        for period, count in counts.items()
    ]
    # stable sort keeps morning..night order on ties
    return sorted(patterns, key=lambda p: -p["count"])


def weekly_follow_through(resolutions: list[Resolution], now: Optional[datetime] = None) -> list[dict]:
    """Share of active resolutions with at least one update in the last week."""
    now = now or utcnow()
    active = [r for r in resolutions if r.is_active]
    if not active:
        return []
    successful = sum(1 for r in active if any(u.created_at > now - RECENT_WINDOW for u in r.updates))
    return [
        {
            "period": "week",
            "totalResolutions": len(active),
            "successfulResolutions": successful,
            "successRate": round(successful / len(active), 2),
        }
    ]


def streaks(resolutions: list[Resolution], now: Optional[datetime] = None) -> dict:
    """Runs of updates no more than two days apart.

    A streak is current while the newest update is within the gap of ``now``.
    ``averageStreakBeforeDrop`` averages every run longer than one update;
    ``streakVulnerabilityWindow`` averages only the runs that were broken.
    """
    now = now or utcnow()
    longest_current = 0
    streak_title = None
    lengths: list[int] = []
    drops: list[int] = []

    for resolution in resolutions:
        times = sorted(u.created_at for u in resolution.updates)
        if len(times) < 2:
            continue

        run = 1
        for previous, current in zip(times, times[1:]):
            if current - previous <= STREAK_GAP:
                run += 1
                continue
            if run > 1:
                drops.append(run)
                lengths.append(run)
            run = 1
        if run > 1:
            lengths.append(run)

        if now - times[-1] <= STREAK_GAP and run > longest_current:
            longest_current = run
            streak_title = resolution.title

    return {
        "currentLongestStreak": longest_current,
        "resolutionWithStreak": streak_title,
        "averageStreakBeforeDrop": round(sum(lengths) / len(lengths)) if lengths else 0,
        "streakVulnerabilityWindow": round(sum(drops) / len(drops)) if drops else 0,
    }


def sentiment_trend(resolutions: list[Resolution], now: Optional[datetime] = None) -> dict:
    """Compare the last week's positive-update rate against all time.

    Updates without a sentiment are ignored. The trend needs at least three
    recent rated updates; resolutions with two or more struggling updates in
    the last week are listed by title.
    """
    now = now or utcnow()
    recent_positive = recent_total = all_positive = all_total = 0
    struggling: dict[str, int] = {}

    for resolution in resolutions:
        for update in resolution.updates:
            if update.sentiment is None:
                continue
            positive = update.sentiment == Sentiment.POSITIVE
            all_total += 1
            all_positive += positive
            if update.created_at >= now - RECENT_WINDOW:
                recent_total += 1
                recent_positive += positive
                if update.sentiment == Sentiment.STRUGGLING:
                    struggling[resolution.title] = struggling.get(resolution.title, 0) + 1

    recent_rate = recent_positive / recent_total if recent_total else 0.0
    historical_rate = all_positive / all_total if all_total else 0.0

    overall = "stable"
    if recent_total >= MIN_TREND_UPDATES:
        if recent_rate > historical_rate + TREND_MARGIN:
            overall = "improving"
        elif recent_rate < historical_rate - TREND_MARGIN:
            overall = "declining"

    return {
        "overall": overall,
        "recentPositiveRate": round(recent_rate, 2),
        "historicalPositiveRate": round(historical_rate, 2),
        "strugglingResolutions": [title for title, count in struggling.items() if count >= 2],
    }


def prompt_insights(insights: dict, user_name: str = "the user") -> list[str]:
    """Turn the computed patterns into short coaching notes."""
    notes = []

    days = insights["bestDays"]
    if len(days) >= 2:
        top = " and ".join(d["dayName"] for d in days[:2])
        notes.append(f"{user_name} is most active on {top} ({days[0]['percentage']}% of activities).")

    periods = insights["bestTimeOfDay"]
    if periods and periods[0]["percentage"] >= 40:
        notes.append(
            f"Most activities are completed in the {periods[0]['period']} ({periods[0]['percentage']}% of the time)."
        )

    follow_through = insights["cadenceSuccess"]
    if follow_through and follow_through[0]["totalResolutions"] >= 2 and follow_through[0]["successRate"] < 0.5:
        notes.append(
            f"Only {_percent(follow_through[0]['successfulResolutions'], follow_through[0]['totalResolutions'])}% "
            "of active resolutions saw activity this week - check which ones have gone quiet."
        )

    effectiveness = insights["nudgeEffectiveness"]
    if effectiveness["totalNudges"] >= 5:
        rate = round(effectiveness["effectivenessRate"] * 100)
        if effectiveness["effectivenessRate"] >= 0.5:
            notes.append(f"Nudges are effective - {rate}% lead to activity within 24 hours.")
        elif effectiveness["effectivenessRate"] < 0.3:
            notes.append(f"Nudges have low effectiveness ({rate}%). Consider adjusting timing or frequency.")
        best = effectiveness["bestNudgeTypes"][0] if effectiveness["bestNudgeTypes"] else None
        if best and best["successRate"] >= 0.5 and best["count"] >= 3:
            label = best["type"].replace("_", " ")
            notes.append(f'"{label}" nudges work best ({round(best["successRate"] * 100)}% success).')

    streak = insights["streaks"]
    if streak["currentLongestStreak"] >= 3 and streak["resolutionWithStreak"]:
        notes.append(
            f'Currently on a {streak["currentLongestStreak"]}-update streak with '
            f'"{streak["resolutionWithStreak"]}" - encourage continuing!'
        )
    if 3 <= streak["streakVulnerabilityWindow"] <= 7:
        notes.append(
            f"Streaks typically break around the {streak['streakVulnerabilityWindow']}-update mark"
            " - be extra encouraging around that time."
        )

    sentiment = insights["sentiment"]
    if sentiment["overall"] == "declining":
        notes.append("Recent sentiment is declining - be extra supportive and check in on blockers.")
    elif sentiment["overall"] == "improving":
        notes.append("Sentiment is improving recently - acknowledge and celebrate the positive momentum!")
    if sentiment["strugglingResolutions"]:
        notes.append(f"Watch for struggles with: {', '.join(sentiment['strugglingResolutions'])}.")

    return notes


def generate_user_insights(
    resolutions: list[Resolution],
    nudges: list[NudgeRecord],
    user_name: str = "the user",
    now: Optional[datetime] = None,
) -> dict:
    """All insight sections plus the derived coaching notes, camelCase keyed."""
    now = now or utcnow()
    updates = _all_updates(resolutions)
    insights = {
        "bestDays": best_days(updates),
        "bestTimeOfDay": best_time_of_day(updates),
        "cadenceSuccess": weekly_follow_through(resolutions, now),
        "nudgeEffectiveness": nudge_effectiveness(nudges, resolutions),
        "streaks": streaks(resolutions, now),
        "sentiment": sentiment_trend(resolutions, now),
    }
    insights["promptInsights"] = prompt_insights(insights, user_name)
    insights["dataPoints"] = len(updates) + len(resolutions)
    insights["generatedAt"] = now.isoformat()
    return insights


def build_insights_prompt_section(insights: dict, user_name: str = "the user") -> str:
    """System prompt section with the coaching notes, or "" while data is thin."""
    if insights["dataPoints"] < MIN_PROMPT_DATA_POINTS or not insights["promptInsights"]:
        return ""
    lines = [
        f"## Personalized Insights About {user_name}",
        f"Based on historical patterns, here's what you know about {user_name}:",
        "",
        *(f"- {note}" for note in insights["promptInsights"]),
        "",
        "Use these insights to personalize your coaching approach.",
    ]
    return "\n".join(lines)
