"""
Suggestion rules: turn a product's metrics into concrete actions.
"""
from typing import Dict, List, Optional

from scanfarma.services.metrics import MetricsAggregator, round_half_up

HIGH = "high"
MEDIUM = "medium"

MAX_ORDER_REDUCTION = 50
FLEET_SUGGESTION_LIMIT = 10


def _suggestion(kind: str, message: str, priority: str, icon: str) -> Dict:
    return {"type": kind, "message": message, "priority": priority, "icon": icon}


def generate_suggestions(metrics: Optional[Dict], window_days: int = 15) -> List[Dict]:
    """
    Evaluate every rule against one product's metrics; all that apply fire.

    - wastePercentage >= 30: reduce_order (high), reduction capped at 50%
    - 15 <= wastePercentage < 30: reduce_order (medium)
    - unitsExpiring >= 10 or >= half of what remains: prioritize_sale (high)
    - any other unitsExpiring > 0: prioritize_sale (medium)
    - unitsExpiring >= 5 and wastePercentage >= 10: offer_discount (high)
    - unitsExpired > 0: request_return (high) and mark_expired (medium)

    Args:
        metrics: Output of MetricsAggregator.product_metrics()["metrics"]
        window_days: Window unitsExpiring was counted over, for the message

    Returns:
        List of {type, message, priority, icon} in rule order
    """
    suggestions: List[Dict] = []
    if not metrics:
        return suggestions

    waste_pct = metrics.get("wastePercentage", 0) or 0
    expiring = metrics.get("unitsExpiring", 0) or 0
    expired = metrics.get("unitsExpired", 0) or 0
    remaining = metrics.get("totalRemaining", 0) or 0

    if waste_pct >= 30:
        reduction = min(int(round_half_up(waste_pct, 0)), MAX_ORDER_REDUCTION)
        suggestions.append(_suggestion("reduce_order", f"Reduce next order by {reduction}%", HIGH, "📉"))
    elif waste_pct >= 15:
        suggestions.append(_suggestion("reduce_order", "Consider reducing the next order", MEDIUM, "📉"))

    if expiring > 0:
        if expiring >= 10 or (remaining > 0 and expiring / remaining >= 0.5):
            suggestions.append(_suggestion(
                "prioritize_sale", f"Prioritize selling {expiring} units about to expire", HIGH, "📢"
            ))
        else:
            suggestions.append(_suggestion(
                "prioritize_sale", f"{expiring} units expire within {window_days} days", MEDIUM, "📢"
            ))

    if expiring >= 5 and waste_pct >= 10:
        suggestions.append(_suggestion("offer_discount", "Offer a promotion to speed up turnover", HIGH, "🏷️"))

    if expired > 0:
        suggestions.append(_suggestion(
            "request_return", f"Request a return of {expired} expired units", HIGH, "↩️"
        ))
        suggestions.append(_suggestion(
            "mark_expired", "Record the expired units as waste", MEDIUM, "📋"
        ))

    return suggestions


def sort_by_priority(suggestions: List[Dict]) -> List[Dict]:
    """High priority first; relative order is otherwise preserved."""
    return sorted(suggestions, key=lambda s: 0 if s["priority"] == HIGH else 1)


def fleet_suggestions(aggregator: MetricsAggregator, limit: int = FLEET_SUGGESTION_LIMIT) -> List[Dict]:
    """Suggestions for every product, tagged with the product, high priority first."""
    window_days = aggregator.settings.PRODUCT_EXPIRING_WINDOW_DAYS
    tagged = []
    for entry in aggregator.all_product_metrics():
        for suggestion in generate_suggestions(entry["metrics"], window_days):
            tagged.append({
                **suggestion,
                "productId": entry["product"]["id"],
                "productName": entry["product"]["name"],
            })
    return sort_by_priority(tagged)[:limit]


def products_with_intelligence(aggregator: MetricsAggregator, limit: int = 50) -> List[Dict]:
    """
    Products with their metrics and suggestions, the ones with the most
    high-priority suggestions first, then the most suggestions overall.
    """
    window_days = aggregator.settings.PRODUCT_EXPIRING_WINDOW_DAYS
    result = []
    for entry in aggregator.all_product_metrics(limit=limit):
        suggestions = generate_suggestions(entry["metrics"], window_days)
        result.append({
            "product": entry["product"],
            "metrics": entry["metrics"],
            "suggestions": suggestions,
            "hasSuggestions": bool(suggestions),
        })

    result.sort(key=lambda item: (
        -sum(1 for s in item["suggestions"] if s["priority"] == HIGH),
        -len(item["suggestions"]),
    ))
    return result
