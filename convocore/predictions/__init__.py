"""
Predictions Module
==================

Rule-based football prediction simulator used as a heuristic reply source.
"""

from .engine import (
    PredictionEngine,
    Prediction,
    PredictionIntent,
    OutcomeLabel,
    DerivedOdds,
    TeamStats,
    Fixture,
    StandingRow,
    LEAGUES,
    TEAMS,
    DISCLAIMER,
    calculate_strength,
    decide,
    derive_odds,
    identify_key_factors,
    format_predictions,
    format_standings,
    format_fixtures,
)

__all__ = [
    'PredictionEngine',
    'Prediction',
    'PredictionIntent',
    'OutcomeLabel',
    'DerivedOdds',
    'TeamStats',
    'Fixture',
    'StandingRow',
    'LEAGUES',
    'TEAMS',
    'DISCLAIMER',
    'calculate_strength',
    'decide',
    'derive_odds',
    'identify_key_factors',
    'format_predictions',
    'format_standings',
    'format_fixtures',
]
