"""Portfolio-value time series — pure functions, no I/O."""

from datetime import datetime

from tradedesk.models.ledger import PortfolioHistoryPoint

MAX_HISTORY_POINTS = 50


def time_label(now: datetime) -> str:
    return now.strftime("%H:%M")


def record_point(
    history: list[PortfolioHistoryPoint],
    total_value: float,
    now: datetime,
    max_points: int = MAX_HISTORY_POINTS,
) -> list[PortfolioHistoryPoint]:
    """Append a sample labelled ``HH:MM`` and keep the last *max_points*.

    At most one sample per minute label: if the newest point already has
    this label, *history* is returned unchanged (same object).
    """
    label = time_label(now)
    if history and history[-1].time == label:
        return history
    updated = list(history) + [PortfolioHistoryPoint(time=label, value=total_value)]
    return updated[-max_points:]
