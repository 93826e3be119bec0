#!/usr/bin/env python3
"""Event Markers - Styles temporal events as markers on the price series."""

from typing import Iterable, List

from ..config import Config
from ..models import TemporalEventMarker, ChartMarker


def sentiment_color(event: TemporalEventMarker, theme: dict) -> str:
    """Positive, negative or neutral marker color from the sentiment score."""
    thresholds = Config.get_event_config()
    if event.sentiment_score > thresholds['positive_sentiment']:
        return theme['marker_positive']
    if event.sentiment_score < thresholds['negative_sentiment']:
        return theme['marker_negative']
    return theme['marker_neutral']


def build_markers(events: Iterable[TemporalEventMarker], chart_config) -> List[ChartMarker]:
    """
    Convert events into chart markers sorted by time.

    Positive sentiment sits above the bar, everything else below; high
    severity events get an arrow instead of a circle.
    """
    theme = chart_config.get_theme_colors()
    high_severity = Config.get_event_config()['high_severity']

    markers = [
        ChartMarker(
            id=f"event-{event.id}",
            time=event.timestamp,
            position='aboveBar' if event.sentiment_score > 0 else 'belowBar',
            color=sentiment_color(event, theme),
            shape='arrowUp' if event.severity > high_severity else 'circle',
            text=event.title
        )
        for event in events
    ]
    return sorted(markers, key=lambda marker: marker.time)
