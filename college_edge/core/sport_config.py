"""Sport-level configuration: every model constant in one place.

This module is the **registry** for the rating, projection and edge
constants.  Nowhere else in the codebase should a K-factor, home-field
figure or edge floor be hard-coded.

Architecture
------------
:class:`SportConfig` is a frozen dataclass carrying all per-sport constants.
Named constructors (:meth:`SportConfig.college_football`,
:meth:`SportConfig.college_basketball`) return pre-populated instances.  The
rating engine, projection functions and backtester all take a config
argument instead of reading module globals.

Typical usage::

    from college_edge.core.sport_config import SportConfig

    cfg = SportConfig.college_football()

    # Override a single constant for an experiment:
    from dataclasses import replace
    aggressive = replace(cfg, k_factor=30.0)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Final

#: Sport identifier strings used in API routes and DB records.
SPORT_ID_NCAAF: Final[str] = "ncaaf"
SPORT_ID_NCAAB: Final[str] = "ncaab"

#: Label written to snapshot and projection rows.
MODEL_VERSION: Final[str] = "elo-ppa-v1"


@dataclass(frozen=True)
class SportConfig:
    """Immutable configuration bundle for a single sport.

    Attributes:
        sport_id: Short identifier (``"ncaaf"``, ``"ncaab"``) used in DB rows.
        sport_name: Human-readable name for logging.

        --- Elo core ---
        base_rating: Rating given to a team the first time it is seen and
            the mean that ratings regress toward between seasons.
        k_factor: Update step size.  Also sets the per-game update cap via
            ``max_update_multiple``.
        home_field_elo: Home advantage expressed in rating points.  Added to
            the home side in both the expected-score and spread formulas.
        elo_divisor: Logistic scale of the expected-score curve (400 is the
            classic chess value).
        elo_to_spread: Rating points per point of spread.

        --- Margin of victory ---
        mov_multiplier_cap: Upper bound on the margin multiplier so blowouts
            cannot dominate the update.
        mov_autocorr_scale / mov_autocorr_slope: Dampening terms that shrink
            the multiplier when a heavy favourite wins big.

        --- Season boundary ---
        season_carryover: Fraction of last season's rating kept when a new
            season starts; the remainder regresses to ``base_rating``.

        --- Opponent-adjusted efficiency blend ---
        ppa_weight / margin_weight: Blend weights for the PPA-driven delta
            and the plain margin-driven Elo delta.
        fallback_margin_weight: Scale applied to the margin delta when PPA
            data is missing for either team.
        ppa_diff_cap: Clamp on the adjusted PPA differential before scaling.
        ppa_scale: Rating points per unit of PPA differential.
        max_update_multiple: Per-game update cap as a multiple of K.
        opp_strength_scale: Rating points per unit of opponent strength.
        opp_strength_weight: PPA shift per unit of opponent strength.

        --- Edge and tiers ---
        min_edge_spread / min_edge_total: Smallest |edge| in points that
            produces a recommendation.
        tier_medium / tier_high: |edge| boundaries of the medium and high
            confidence buckets.  Anything below ``tier_medium`` that still
            clears the floor is ``low``.
        sharp_move_threshold / major_move_threshold: Line movement in points
            treated as a sharp or major move.

        --- Uncertainty ---
        uncertainty_early / uncertainty_mid / uncertainty_late: Week-based
            uncertainty for weeks 0-1, weeks 2-4 and week 5 onward.  The
            effective edge is ``raw_edge * (1 - uncertainty)``.
        uncertainty_incomplete: Added when a team had no rating snapshot.
        uncertainty_cap: Upper bound on a game's total uncertainty.
        max_uncertainty_early / max_uncertainty_late: Games above this
            uncertainty are never bettable (weeks 1-4 / week 5 onward).

        --- Market ---
        default_odds: Price assumed when a line has no price attached.
        baseline_total: League-average combined score used as the starting
            point of the totals projection.
        odds_api_sport_key: Sport key passed to The Odds API.
        cfbd_division: Classification filter for the CFBD feeds.
    """

    # Identity
    sport_id: str
    sport_name: str

    # Elo core
    base_rating: float = 1500.0
    k_factor: float = 20.0
    home_field_elo: float = 55.0
    elo_divisor: float = 400.0
    elo_to_spread: float = 25.0

    # Margin of victory
    mov_multiplier_cap: float = 3.0
    mov_autocorr_scale: float = 2.2
    mov_autocorr_slope: float = 0.001

    # Season boundary
    season_carryover: float = 0.67

    # Blend
    ppa_weight: float = 0.75
    margin_weight: float = 0.25
    fallback_margin_weight: float = 0.25
    ppa_diff_cap: float = 0.5
    ppa_scale: float = 250.0
    max_update_multiple: float = 2.0
    opp_strength_scale: float = 100.0
    opp_strength_weight: float = 0.1

    # Edge and tiers
    min_edge_spread: float = 3.0
    min_edge_total: float = 2.5
    tier_medium: float = 5.0
    tier_high: float = 8.0
    sharp_move_threshold: float = 2.0
    major_move_threshold: float = 3.5

    # Uncertainty
    uncertainty_early: float = 0.45
    uncertainty_mid: float = 0.25
    uncertainty_late: float = 0.10
    uncertainty_incomplete: float = 0.15
    uncertainty_cap: float = 0.75
    max_uncertainty_early: float = 0.50
    max_uncertainty_late: float = 0.60

    # Market
    default_odds: int = -110
    baseline_total: float = 55.0
    odds_api_sport_key: str = "americanfootball_ncaaf"
    cfbd_division: str = "fbs"

    # ------------------------------------------------------------------ #
    #  Named constructors                                                  #
    # ------------------------------------------------------------------ #

    @classmethod
    def college_football(cls) -> SportConfig:
        """Return the canonical FBS football configuration.

        Home field is 55 rating points, which at 25 rating points per point
        is 2.2 points of spread.  That sits just under the 2.5-3 points
        usually quoted for college football; the value is fixed so that a
        1600 home team against a 1500 visitor projects to -6.2.
        """
        return cls(
            sport_id=SPORT_ID_NCAAF,
            sport_name="NCAA Football",
            home_field_elo=55.0,
            elo_to_spread=25.0,
            baseline_total=55.0,
            odds_api_sport_key="americanfootball_ncaaf",
            cfbd_division="fbs",
        )

    @classmethod
    def college_basketball(cls) -> SportConfig:
        """Return the D1 basketball configuration.

        Basketball plays far more games, so K is lower, and totals live
        around 140.  Home court of 3 points at 28 rating points per point.
        """
        return cls(
            sport_id=SPORT_ID_NCAAB,
            sport_name="NCAA D1 Basketball",
            k_factor=15.0,
            home_field_elo=84.0,
            elo_to_spread=28.0,
            min_edge_spread=3.0,
            min_edge_total=4.0,
            tier_medium=5.0,
            tier_high=8.0,
            baseline_total=140.0,
            odds_api_sport_key="basketball_ncaab",
            cfbd_division="d1",
        )

    @classmethod
    def for_sport(cls, sport_id: str) -> SportConfig:
        """Look up the named constructor for a sport identifier."""
        if sport_id == SPORT_ID_NCAAF:
            return cls.college_football()
        if sport_id == SPORT_ID_NCAAB:
            return cls.college_basketball()
        raise ValueError(f"Unknown sport {sport_id!r}")

    # ------------------------------------------------------------------ #
    #  Convenience accessors                                               #
    # ------------------------------------------------------------------ #

    @property
    def max_update(self) -> float:
        """Largest rating change a single game may apply to one team."""
        return self.k_factor * self.max_update_multiple

    def neutral_site(self) -> SportConfig:
        """Return a copy of this config with home field zeroed out.

        Examples::

            cfg = SportConfig.college_football().neutral_site()
            assert cfg.home_field_elo == 0.0
        """
        return replace(self, home_field_elo=0.0)

    def __repr__(self) -> str:
        return (
            f"SportConfig(sport_id={self.sport_id!r}, "
            f"k={self.k_factor}, hfa={self.home_field_elo}, "
            f"elo_to_spread={self.elo_to_spread})"
        )
