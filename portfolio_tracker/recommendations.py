"""
Quality metrics for AI-generated stock recommendations.

Success is measured with a confidence proxy: an executed recommendation
counts as successful when its stated confidence exceeds a threshold. The
proxy does not look at realised outcomes. Returns, however, are measured
against current prices whenever a price book is supplied.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence

import pandas as pd
from dateutil.relativedelta import relativedelta

from portfolio_tracker.types import (
    AIRecommendationMetrics,
    ConfidenceDistribution,
    PriceSnapshot,
    Recommendation,
    to_utc,
)

__all__ = [
    "calculate_ai_metrics",
    "confidence_bucket",
    "recommendation_return",
    "SUCCESS_THRESHOLD",
]

log = logging.getLogger(__name__)

SUCCESS_THRESHOLD = 70.0
HIGH_CONFIDENCE = 80.0
MEDIUM_CONFIDENCE = 60.0

TIME_WINDOWS = {
    "1week": relativedelta(weeks=1),
    "1month": relativedelta(months=1),
    "3months": relativedelta(months=3),
    "6months": relativedelta(months=6),
}


def confidence_bucket(
    confidence: float, high: float = HIGH_CONFIDENCE, medium: float = MEDIUM_CONFIDENCE
) -> str:
    """Returns 'high', 'medium' or 'low'."""
    if confidence >= high:
        return "high"
    if confidence >= medium:
        return "medium"
    return "low"


def _accuracy(recommendations: Sequence[Recommendation], threshold: float) -> float:
    if not recommendations:
        return 0.0
    successful = [r for r in recommendations if r.confidence > threshold]
    return len(successful) / len(recommendations) * 100


def recommendation_return(
    recommendation: Recommendation, prices: Optional[Mapping[str, PriceSnapshot]] = None
) -> Optional[float]:
    """
    Return of a recommendation, in percent.

    With a price book this is the move from the price at creation to the
    current price, inverted for Sell recommendations. Without one it falls
    back to the confidence proxy (confidence - 50) / 10. Returns None when a
    price book is given but holds no price for the symbol.
    """
    if prices is None:
        return (recommendation.confidence - 50) / 10

    snapshot = prices.get(recommendation.symbol)
    if snapshot is None:
        return None
    start = recommendation.current_price_at_creation
    move = (snapshot.current_price - start) / start * 100
    return -move if recommendation.kind == "Sell" else move


def _average_days_to_execution(executed: Sequence[Recommendation]) -> Optional[float]:
    """Mean days from creation to execution, over recommendations that recorded an execution time."""
    durations = [
        (r.executed_at - r.created_at).total_seconds() / 86400
        for r in executed
        if r.executed_at is not None
    ]
    if not durations:
        return None
    return float(pd.Series(durations).mean())


def _time_based_accuracy(
    executed: Sequence[Recommendation], as_of: datetime, threshold: float
) -> Dict[str, float]:
    """Accuracy of executed recommendations created within each window before `as_of`."""
    accuracy = {}
    for label, window in TIME_WINDOWS.items():
        since = as_of - window
        in_window = [r for r in executed if since <= r.created_at <= as_of]
        accuracy[label] = _accuracy(in_window, threshold)
    return accuracy


def calculate_ai_metrics(
    recommendations: Sequence[Recommendation],
    *,
    prices: Optional[Mapping[str, PriceSnapshot]] = None,
    as_of: Optional[datetime] = None,
    success_threshold: float = SUCCESS_THRESHOLD,
    high_confidence: float = HIGH_CONFIDENCE,
    medium_confidence: float = MEDIUM_CONFIDENCE,
) -> AIRecommendationMetrics:
    """
    Scores a set of recommendations as a binary classifier.

    True positives are successful executed recommendations, false positives
    are the remaining executed ones and false negatives are rejected ones.

    Args:
        recommendations: All recommendations, regardless of status.
        prices: Optional current prices; enables realised returns.
        as_of: Reference instant for time-window accuracy (defaults to now).
        success_threshold: Confidence above which a recommendation counts as successful.
        high_confidence: Lower bound of the high-confidence bucket.
        medium_confidence: Lower bound of the medium-confidence bucket.

    Returns:
        An AIRecommendationMetrics object. An empty set yields zero metrics.
    """
    as_of = to_utc(as_of) if as_of is not None else datetime.now(timezone.utc)

    total = len(recommendations)
    executed = [r for r in recommendations if r.status == "executed"]
    rejected = [r for r in recommendations if r.status == "rejected"]
    successful = [r for r in executed if r.confidence > success_threshold]

    true_positives = len(successful)
    false_positives = len(executed) - true_positives
    false_negatives = len(rejected)

    precision = (
        true_positives / (true_positives + false_positives) * 100
        if true_positives + false_positives else 0.0
    )
    recall = (
        true_positives / (true_positives + false_negatives) * 100
        if true_positives + false_negatives else 0.0
    )
    f1_score = 2 * precision * recall / (precision + recall) if precision + recall else 0.0

    buckets: Dict[str, List[Recommendation]] = {"high": [], "medium": [], "low": []}
    distribution = {"high": 0, "medium": 0, "low": 0}
    for rec in recommendations:
        bucket = confidence_bucket(rec.confidence, high_confidence, medium_confidence)
        distribution[bucket] += 1
        if rec.status == "executed":
            buckets[bucket].append(rec)

    returns = pd.Series(
        [recommendation_return(r, prices) for r in executed], dtype=float
    ).dropna()
    if prices is not None and len(returns) < len(executed):
        log.warning(
            f"{len(executed) - len(returns)} executed recommendations have no current price "
            "and were left out of the return statistics."
        )

    by_status = pd.Series([r.status for r in recommendations], dtype=object).value_counts()

    return AIRecommendationMetrics(
        total_recommendations=total,
        executed_recommendations=len(executed),
        successful_recommendations=len(successful),
        accuracy=_accuracy(executed, success_threshold),
        precision=precision,
        recall=recall,
        f1_score=f1_score,
        average_confidence=sum(r.confidence for r in recommendations) / total if total else 0.0,
        high_confidence_accuracy=_accuracy(buckets["high"], success_threshold),
        medium_confidence_accuracy=_accuracy(buckets["medium"], success_threshold),
        low_confidence_accuracy=_accuracy(buckets["low"], success_threshold),
        average_return_on_recommendations=float(returns.mean()) if not returns.empty else 0.0,
        best_performing_recommendation=float(returns.max()) if not returns.empty else 0.0,
        worst_performing_recommendation=float(returns.min()) if not returns.empty else 0.0,
        return_basis="realized" if prices is not None else "confidence_proxy",
        recommendations_by_status={str(k): int(v) for k, v in by_status.items()},
        confidence_distribution=ConfidenceDistribution(**distribution),
        average_days_to_execution=_average_days_to_execution(executed),
        time_based_accuracy=_time_based_accuracy(executed, as_of, success_threshold),
    )
