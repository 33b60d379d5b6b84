"""
Prediction Engine
=================

Closed-world football prediction simulator. Team statistics are synthesized
from an injected random source, scored with fixed formulas and turned into
structured predictions, fixtures and league tables. Nothing here talks to a
real data source: with a seeded ``random.Random`` every output is
reproducible.
"""

import random
import re
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

logger = logging.getLogger(__name__)


LEAGUES: Tuple[str, ...] = (
    "Premier League",
    "La Liga",
    "Bundesliga",
    "Serie A",
    "Ligue 1",
    "Champions League",
    "Europa League",
    "World Cup",
    "Euro Cup",
)

TEAMS: Dict[str, Tuple[str, ...]] = {
    "Premier League": (
        "Manchester City", "Arsenal", "Manchester United", "Liverpool", "Chelsea",
        "Tottenham", "Newcastle", "Brighton", "Aston Villa", "West Ham",
    ),
    "La Liga": (
        "Real Madrid", "Barcelona", "Atletico Madrid", "Sevilla", "Villarreal",
        "Real Sociedad", "Athletic Bilbao", "Valencia", "Real Betis", "Girona",
    ),
    "Bundesliga": (
        "Bayern Munich", "Borussia Dortmund", "RB Leipzig", "Bayer Leverkusen",
        "VfB Stuttgart", "Eintracht Frankfurt", "Hoffenheim", "Freiburg",
    ),
}

DEFAULT_LEAGUE = "Premier League"

# Recent results are always a prefix of this sequence
FORM_SEQUENCE: Tuple[str, ...] = ("W", "D", "L", "W", "W", "D", "L", "W", "D", "W")

PERFORMANCES: Tuple[str, ...] = (
    "Excellent attacking form",
    "Solid defensive record",
    "Inconsistent but dangerous",
    "Strong home/away record",
    "Struggling with injuries",
    "Peaking at the right time",
)

BASE_ODDS = (2.5, 3.2, 2.8)
MIN_ODDS = 1.01
DECISION_MARGIN = 0.3

DISCLAIMER = (
    "**Disclaimer**: These are AI-generated predictions for entertainment purposes only. "
    "Please gamble responsibly."
)


class OutcomeLabel(Enum):
    """Predicted result, from the first (home) side's point of view."""
    FIRST_WINS = "FirstWins"
    DRAW = "Draw"
    SECOND_WINS = "SecondWins"

    @property
    def display(self) -> str:
        return _OUTCOME_DISPLAY[self]


_OUTCOME_DISPLAY = {
    OutcomeLabel.FIRST_WINS: "Home Win",
    OutcomeLabel.DRAW: "Draw",
    OutcomeLabel.SECOND_WINS: "Away Win",
}


class PredictionIntent(Enum):
    """What a prediction request is asking for."""
    MATCH = "match"
    TODAY = "today"
    STANDINGS = "standings"
    UPCOMING = "upcoming"
    OVERVIEW = "overview"


@dataclass(frozen=True)
class TeamStats:
    """Synthesized recent statistics for one team."""
    team: str
    form: Tuple[str, ...]
    goals_scored: int
    goals_conceded: int
    home_advantage: float = 0.0
    recent_performance: str = ""

    def count(self, result: str) -> int:
        return sum(1 for r in self.form if r == result)


@dataclass(frozen=True)
class DerivedOdds:
    """Decimal odds for the three outcomes."""
    a: float
    draw: float
    b: float


@dataclass(frozen=True)
class Prediction:
    """A single match prediction."""
    subject_a: str
    subject_b: str
    category: str
    outcome_label: OutcomeLabel
    confidence: int
    rationale: str
    key_factors: Tuple[str, ...] = ()
    derived_odds: Optional[DerivedOdds] = None
    match_date: Optional[date] = None
    strength_a: float = 0.0
    strength_b: float = 0.0


@dataclass(frozen=True)
class Fixture:
    """A scheduled match."""
    match_date: date
    home: str
    away: str
    league: str

    def __str__(self) -> str:
        return f"{self.match_date.isoformat()}: {self.home} vs {self.away} ({self.league})"


@dataclass
class StandingRow:
    """One line of a league table."""
    team: str
    won: int
    drawn: int
    lost: int
    goals_for: int
    goals_against: int
    position: int = 0

    @property
    def played(self) -> int:
        return self.won + self.drawn + self.lost

    @property
    def points(self) -> int:
        return self.won * 3 + self.drawn

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against


def teams_for(league: str) -> Tuple[str, ...]:
    """Team list of ``league``; competitions without one use the Premier League."""
    return TEAMS.get(league, TEAMS[DEFAULT_LEAGUE])


def league_of(team: str) -> Optional[str]:
    for league, teams in TEAMS.items():
        if team in teams:
            return league
    return None


def calculate_strength(stats: TeamStats) -> float:
    """Scalar team strength clamped to [0.1, 1.0]."""
    form_score = 0.0
    for result in stats.form:
        if result == "W":
            form_score += 0.1
        elif result == "D":
            form_score += 0.05
        else:
            form_score -= 0.05

    goal_difference = (stats.goals_scored - stats.goals_conceded) / 20

    strength = 0.5
    strength += stats.home_advantage
    strength += form_score * 0.2
    strength += goal_difference * 0.1

    return max(0.1, min(1.0, strength))


def decide(home_strength: float, away_strength: float) -> Tuple[OutcomeLabel, int]:
    """Outcome and confidence percentage for two strengths."""
    gap = home_strength - away_strength
    if gap > DECISION_MARGIN:
        return OutcomeLabel.FIRST_WINS, round(min(85, 70 + gap * 50))
    if -gap > DECISION_MARGIN:
        return OutcomeLabel.SECOND_WINS, round(min(80, 65 - gap * 50))
    return OutcomeLabel.DRAW, round(min(75, 60 + abs(gap) * 30))


def derive_odds(outcome: OutcomeLabel, confidence: int) -> DerivedOdds:
    """Decimal odds from the base prices, shortened for the predicted outcome.

    The predicted outcome is priced ``1 + base * (1 - c)``; the other two
    ``base * (1 + c)``. No price goes below ``MIN_ODDS``.
    """
    c = confidence / 100
    prices = []
    for label, base in zip(OutcomeLabel, BASE_ODDS):
        if label == outcome:
            prices.append(max(MIN_ODDS, round(1 + base * (1 - c), 2)))
        else:
            prices.append(round(base * (1 + c), 2))
    return DerivedOdds(a=prices[0], draw=prices[1], b=prices[2])


def identify_key_factors(home: TeamStats, away: TeamStats) -> Tuple[str, ...]:
    """Up to three notable facts, in fixed order."""
    factors = []
    if home.count("W") >= 3:
        factors.append(f"{home.team} in excellent form")
    if away.count("L") >= 2:
        factors.append(f"{away.team} struggling away from home")
    if home.goals_scored > 25:
        factors.append(f"{home.team} scoring freely")
    if away.goals_conceded > 20:
        factors.append(f"{away.team} defensive vulnerabilities")
    if home.home_advantage > 0.2:
        factors.append("Strong home advantage")
    return tuple(factors[:3])


def rationale_for(outcome: OutcomeLabel, home: str, away: str) -> str:
    if outcome == OutcomeLabel.FIRST_WINS:
        return f"{home} has strong home form and superior recent performance"
    if outcome == OutcomeLabel.SECOND_WINS:
        return f"{away} is in excellent form and has been performing well away from home"
    return "Both teams are evenly matched with similar form and performance levels"


class PredictionEngine:
    """Synthesizes predictions, fixtures and tables for the team catalog."""

    TRIGGER_PATTERNS = [
        r'\bfootball\b',
        r'\bsoccer\b',
        r'\bpredict(?:ion|ions|s)?\b',
        r'\bfixtures?\b',
        r'\bleagues?\b',
        r'\bstandings\b',
        r'\bla liga\b',
        r'\bbundesliga\b',
        r'\bserie a\b',
        r'\bligue 1\b',
        r'\bbet(?:s|ting)?\b',
        r'\bodds\b',
        r'\bmatches\b',
    ]

    _VS_RE = re.compile(r'(.+?)\s+(?:vs\.?|v\.?|versus)\s+(.+)', re.IGNORECASE)

    def __init__(self, rng: Optional[random.Random] = None,
                 today: Optional[Callable[[], date]] = None):
        self.rng = rng or random.Random()
        self._today = today or date.today
        self._trigger_regex = re.compile('|'.join(self.TRIGGER_PATTERNS), re.IGNORECASE)

    # Synthesis

    def generate_team_stats(self, team: str, is_home: bool) -> TeamStats:
        form_length = self.rng.randint(5, 9)
        goals_scored = self.rng.randint(20, 49)
        goals_conceded = self.rng.randint(15, 39)
        home_advantage = self.rng.random() * 0.3 + 0.1 if is_home else 0.0
        return TeamStats(
            team=team,
            form=FORM_SEQUENCE[:form_length],
            goals_scored=goals_scored,
            goals_conceded=goals_conceded,
            home_advantage=home_advantage,
            recent_performance=self.rng.choice(PERFORMANCES),
        )

    def predict_match(self, home: str, away: str, league: str) -> Prediction:
        """Predict one match between two teams."""
        home_stats = self.generate_team_stats(home, is_home=True)
        away_stats = self.generate_team_stats(away, is_home=False)
        return self.predict_from_stats(home_stats, away_stats, league)

    def predict_from_stats(self, home_stats: TeamStats, away_stats: TeamStats, league: str) -> Prediction:
        home_strength = calculate_strength(home_stats)
        away_strength = calculate_strength(away_stats)
        outcome, confidence = decide(home_strength, away_strength)

        return Prediction(
            subject_a=home_stats.team,
            subject_b=away_stats.team,
            category=league,
            outcome_label=outcome,
            confidence=confidence,
            rationale=rationale_for(outcome, home_stats.team, away_stats.team),
            key_factors=identify_key_factors(home_stats, away_stats),
            derived_odds=derive_odds(outcome, confidence),
            match_date=self._today(),
            strength_a=home_strength,
            strength_b=away_strength,
        )

    def _pick_pair(self, league: str) -> Tuple[str, str]:
        home, away = self.rng.sample(teams_for(league), 2)
        return home, away

    def generate_today_predictions(self) -> List[Prediction]:
        """Three to five predictions for today's fixtures."""
        predictions = []
        for _ in range(self.rng.randint(3, 5)):
            league = self.rng.choice(LEAGUES)
            home, away = self._pick_pair(league)
            predictions.append(self.predict_match(home, away, league))
        return predictions

    def upcoming_fixtures(self, days: int = 7) -> List[Fixture]:
        """One fixture per day for the next ``days`` days."""
        today = self._today()
        fixtures = []
        for offset in range(1, days + 1):
            league = self.rng.choice(LEAGUES)
            home, away = self._pick_pair(league)
            fixtures.append(Fixture(match_date=today + timedelta(days=offset), home=home, away=away, league=league))
        return fixtures

    def league_standings(self, league: str) -> List[StandingRow]:
        """Simulated table, best first. Positions are assigned after sorting."""
        rows = [
            StandingRow(
                team=team,
                won=self.rng.randint(5, 19),
                drawn=self.rng.randint(2, 9),
                lost=self.rng.randint(1, 10),
                goals_for=self.rng.randint(20, 49),
                goals_against=self.rng.randint(15, 39),
            )
            for team in teams_for(league)
        ]
        rows.sort(key=lambda r: (r.points, r.goal_difference), reverse=True)
        for position, row in enumerate(rows, start=1):
            row.position = position
        return rows

    # Intent handling

    def find_match(self, text: str) -> Optional[Tuple[str, str]]:
        """Catalog teams named in a ``<team> vs <team>`` request."""
        match = self._VS_RE.search(text)
        if not match:
            return None
        home = _find_team(match.group(1), last=True)
        away = _find_team(match.group(2), last=False)
        if home and away and home != away:
            return home, away
        return None

    def is_prediction_request(self, text: str) -> bool:
        return bool(self._trigger_regex.search(text)) or self.find_match(text) is not None

    def detect_intent(self, text: str) -> Optional[PredictionIntent]:
        """Classify a prediction request, or None if ``text`` is not one."""
        if not self.is_prediction_request(text):
            return None

        lowered = text.lower()
        if self.find_match(text):
            return PredictionIntent.MATCH
        if re.search(r"\b(today|today's|tonight)\b", lowered):
            return PredictionIntent.TODAY
        if re.search(r'\b(standings|table)\b', lowered):
            return PredictionIntent.STANDINGS
        if re.search(r'\b(upcoming|next|fixtures?|this week)\b', lowered):
            return PredictionIntent.UPCOMING
        return PredictionIntent.OVERVIEW

    def respond(self, text: str) -> Optional[str]:
        """Markdown reply for a prediction request, or None."""
        intent = self.detect_intent(text)
        if intent is None:
            return None
        logger.info(f"Prediction request detected: {intent.value}")

        if intent == PredictionIntent.MATCH:
            home, away = self.find_match(text)
            home_league, away_league = league_of(home), league_of(away)
            league = home_league if home_league == away_league else "Club Friendly"
            return format_predictions([self.predict_match(home, away, league)], title="Match Prediction")
        if intent == PredictionIntent.TODAY:
            return format_predictions(self.generate_today_predictions())
        if intent == PredictionIntent.STANDINGS:
            league = _find_league(text)
            return format_standings(league, self.league_standings(league))
        if intent == PredictionIntent.UPCOMING:
            return format_fixtures(self.upcoming_fixtures())
        return OVERVIEW_TEXT


def _find_team(fragment: str, last: bool) -> Optional[str]:
    """Longest catalog team named in ``fragment``, nearest to the ``vs``."""
    lowered = fragment.lower()
    best = None
    best_key = None
    for teams in TEAMS.values():
        for team in teams:
            for m in re.finditer(r'\b' + re.escape(team.lower()) + r'\b', lowered):
                key = (m.end() if last else -m.start(), len(team))
                if best_key is None or key > best_key:
                    best, best_key = team, key
    return best


def _find_league(text: str) -> str:
    """League named in ``text`` among those with a team list."""
    lowered = text.lower()
    for league in TEAMS:
        if league.lower() in lowered:
            return league
    return DEFAULT_LEAGUE


OVERVIEW_TEXT = (
    "**Football Information & Predictions**\n\n"
    "I can help you with:\n"
    "- Today's match predictions\n"
    "- League standings and tables\n"
    "- Upcoming matches\n"
    "- Team analysis and statistics\n\n"
    "Just ask me about:\n"
    "- \"Show me today's football predictions\"\n"
    "- \"Premier League standings\"\n"
    "- \"Upcoming matches this week\"\n"
    "- \"Predict Manchester City vs Arsenal\""
)


def format_prediction(prediction: Prediction, index: Optional[int] = None) -> str:
    prefix = f"{index}. " if index is not None else ""
    lines = [
        f"**{prefix}{prediction.subject_a} vs {prediction.subject_b}**",
        f"League: {prediction.category}",
        f"Prediction: **{prediction.outcome_label.display}** ({prediction.confidence}% confidence)",
        f"Reasoning: {prediction.rationale}",
    ]
    if prediction.derived_odds:
        odds = prediction.derived_odds
        lines.append(f"Odds: H: {odds.a:.2f}, D: {odds.draw:.2f}, A: {odds.b:.2f}")
    if prediction.key_factors:
        lines.append(f"Key Factors: {', '.join(prediction.key_factors)}")
    return "\n".join(lines)


def format_predictions(predictions: Sequence[Prediction], title: str = "Today's Football Predictions") -> str:
    blocks = [f"**{title}**"]
    numbered = len(predictions) > 1
    for i, prediction in enumerate(predictions, start=1):
        blocks.append(format_prediction(prediction, i if numbered else None))
    blocks.append(DISCLAIMER)
    return "\n\n".join(blocks)


def format_standings(league: str, rows: Sequence[StandingRow]) -> str:
    lines = [
        f"**{league} Standings**",
        "",
        "Pos | Team | P | W | D | L | GF | GA | Pts",
        "----|------|---|---|---|---|----|----|----",
    ]
    for row in rows[:10]:
        lines.append(
            f"{row.position:>3} | {row.team:<20} | {row.played} | {row.won} | {row.drawn} | "
            f"{row.lost} | {row.goals_for} | {row.goals_against} | {row.points}"
        )
    return "\n".join(lines)


def format_fixtures(fixtures: Sequence[Fixture]) -> str:
    lines = [f"**Upcoming Matches (Next {len(fixtures)} Days)**", ""]
    lines.extend(f"{i}. {fixture}" for i, fixture in enumerate(fixtures, start=1))
    return "\n".join(lines)
