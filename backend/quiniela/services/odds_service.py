"""
backend/quiniela/services/odds_service.py

Purpose:
    Deterministic 1/X/2 pricing for a round's fixtures from the current
    league table.

    Each team gets a strength of max(1, 3*points + 2*goal_difference +
    goals_for). The draw has a fixed baseline strength. An outcome's price
    is its inverse share of the total strength, marked up by the overround
    margin, rounded to 2 decimals and clamped to [1.0, ceiling]. Favourites
    price lower; no price pays out less than the stake and none exceeds the
    ceiling.

Dependencies:
    - quiniela.models
"""

from dataclasses import dataclass
from typing import Iterable

from quiniela.errors import ConfigurationError
from quiniela.models.match import Match, OddsTriple
from quiniela.models.standings import StandingsRow

MIN_PRICE = 1.0
MIN_STRENGTH = 1


@dataclass(frozen=True)
class OddsPolicy:
    draw_strength: float = 80.0
    overround_margin: float = 1.08
    ceiling: float = 20.0

    def __post_init__(self):
        if self.draw_strength <= 0 or self.overround_margin <= 0:
            raise ConfigurationError(
                f"draw strength and overround margin must be positive, got {self}"
            )
        if self.ceiling < MIN_PRICE:
            raise ConfigurationError(f"odds ceiling must be at least {MIN_PRICE}, got {self.ceiling}")

    @classmethod
    def from_settings(cls, settings) -> "OddsPolicy":
        return cls(
            draw_strength=float(settings.DRAW_STRENGTH),
            overround_margin=float(settings.OVERROUND_MARGIN),
            ceiling=float(settings.ODDS_CEILING),
        )


DEFAULT_ODDS_POLICY = OddsPolicy()


def team_strength(row: StandingsRow | None) -> int:
    """Pricing-only scalar; teams without a table row get the floor."""
    if row is None:
        return MIN_STRENGTH
    return max(MIN_STRENGTH, 3 * row.points + 2 * row.goal_difference + row.goals_for)


def _price(strength: float, total: float, policy: OddsPolicy) -> float:
    raw = round((1 / (strength / total)) * policy.overround_margin, 2)
    return min(policy.ceiling, max(MIN_PRICE, raw))


def calculate_odds(
    standings: Iterable[StandingsRow],
    match: Match,
    policy: OddsPolicy = DEFAULT_ODDS_POLICY,
) -> OddsTriple:
    """Price a single fixture."""
    by_team = {row.team.id: row for row in standings}
    return _odds_for(by_team, match, policy)


def _odds_for(by_team: dict[int, StandingsRow], match: Match, policy: OddsPolicy) -> OddsTriple:
    home = team_strength(by_team.get(match.home_team.id))
    away = team_strength(by_team.get(match.away_team.id))
    total = home + away + policy.draw_strength
    return OddsTriple(
        home=_price(home, total, policy),
        draw=_price(policy.draw_strength, total, policy),
        away=_price(away, total, policy),
    )


def price_fixtures(
    fixtures: Iterable[Match],
    standings: Iterable[StandingsRow],
    policy: OddsPolicy = DEFAULT_ODDS_POLICY,
) -> list[tuple[Match, OddsTriple]]:
    """Price every fixture of a round against one table snapshot."""
    by_team = {row.team.id: row for row in standings}
    return [(match, _odds_for(by_team, match, policy)) for match in fixtures]
