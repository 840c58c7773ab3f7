"""Game rules and storage configuration with documented defaults."""

from dataclasses import dataclass

DEFAULT_FORMATION = "4-3-3"


@dataclass
class FantasyConfig:
    """Configuration for the squad, transfer and scoring engines.

    Budget values are in millions of virtual currency.  Every engine
    accepts an instance; override a rule by constructing one with keyword
    arguments, e.g. ``FantasyConfig(sell_tax_rate=0.2)``.
    """

    # Budget: remaining = starting_budget - sum(fantasy_price of squad)
    starting_budget: float = 100.0

    # Fraction of the price withheld when selling (0.10 -> 90% refund)
    sell_tax_rate: float = 0.10

    # Squad size limits
    max_squad_size: int = 18
    max_starters: int = 11
    max_bench: int = 7

    # Role multipliers applied to a player's match rating
    captain_multiplier: float = 2.0
    starter_multiplier: float = 1.0
    bench_multiplier: float = 0.5

    # Formation given to squads created implicitly by a first transfer
    default_formation: str = DEFAULT_FORMATION

    # Demo simulation when a matchday goes LIVE: share of scheduled
    # matches finished immediately, and how many are left in progress.
    live_finished_fraction: float = 0.5
    live_in_progress_count: int = 2

    # Seed for simulated scores/stats; None draws from system entropy
    simulation_seed: int | None = None

    # Persistent data storage
    data_dir: str = "data"
    db_path: str = "data/fantasy.db"

    # Leaderboard pagination
    leaderboard_page_size: int = 20
