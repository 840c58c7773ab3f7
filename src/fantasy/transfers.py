"""Transfer engine: buying and selling players against the virtual budget.

Budget is derived, never stored: remaining = starting budget minus the
value of the current squad.  A sale's refund (price less sell tax) is
reported to the caller; the budget itself is simply recomputed from the
squad that remains.

Like the roster engine, transfers do not check the matchday lock.
"""

import logging
import sqlite3
from dataclasses import dataclass

from fantasy.config import FantasyConfig
from fantasy.db import transaction
from fantasy.exceptions import PlayerNotFound, SquadNotFound
from fantasy.formations import get_formation
from fantasy.roster import RosterEngine

logger = logging.getLogger(__name__)


@dataclass
class TransferResult:
    """Outcome of a buy or sell, for caller-facing confirmation."""

    action: str              # "buy" or "sell"
    user_id: str
    squad_id: int
    player_id: int
    player_name: str
    price: float
    refund: float            # 0.0 for purchases
    remaining_budget: float
    is_starter: bool | None = None  # purchases only


class TransferEngine:
    """Buy/sell operations layered on the roster engine."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        config: FantasyConfig | None = None,
        roster: RosterEngine | None = None,
    ) -> None:
        self.conn = conn
        self.config = config or FantasyConfig()
        self.roster = roster or RosterEngine(conn, self.config)

    def sell_refund(self, price: float) -> float:
        """Amount returned for selling a player bought at *price*."""
        return round(price * (1 - self.config.sell_tax_rate), 2)

    def buy_player(self, user_id: str, player_id: int) -> TransferResult:
        """Add a player to the user's squad, creating the squad if needed.

        The player starts if the lineup has fewer than ``max_starters``
        starters and a free slot at the player's position under the
        current formation; otherwise they go to the bench.  Squad creation
        and the purchase commit together or not at all.

        Raises:
            BudgetExceeded, SquadFull, DuplicatePlayer, PlayerNotFound:
                propagated from the roster engine; nothing is written.
        """
        with transaction(self.conn):
            squad = self.roster.get_squad_for_user(user_id)
            if squad is None:
                squad = self.roster.create_squad(user_id, self.config.default_formation)
            squad_id = squad["squad_id"]

            player = self.conn.execute(
                "SELECT * FROM players WHERE player_id = ?", (player_id,)
            ).fetchone()
            if player is None:
                raise PlayerNotFound(
                    f"Player {player_id} does not exist", player_id=player_id
                )

            as_starter = self._has_starter_slot(squad, player["position"])
            member = self.roster.add_player(squad_id, player_id, as_starter=as_starter)
            remaining = self.roster.remaining_budget(squad_id)

        logger.info(
            "User %s bought %s (%d) for $%.2fM as %s; $%.2fM left",
            user_id, member["name"], player_id, member["fantasy_price"],
            "starter" if member["is_starter"] else "bench", remaining,
        )
        return TransferResult(
            action="buy",
            user_id=user_id,
            squad_id=squad_id,
            player_id=player_id,
            player_name=member["name"],
            price=member["fantasy_price"],
            refund=0.0,
            remaining_budget=remaining,
            is_starter=member["is_starter"],
        )

    def sell_player(self, user_id: str, player_id: int) -> TransferResult:
        """Remove a player from the user's squad and report the refund.

        Raises:
            SquadNotFound: the user has no squad.
            PlayerNotFound: the player is not in the squad.
        """
        with transaction(self.conn):
            squad = self.roster.get_squad_for_user(user_id)
            if squad is None:
                raise SquadNotFound(f"User {user_id} has no squad")
            squad_id = squad["squad_id"]

            removed = self.roster.remove_player(squad_id, player_id)
            refund = self.sell_refund(removed["fantasy_price"])
            remaining = self.roster.remaining_budget(squad_id)

        logger.info(
            "User %s sold %s (%d): refund $%.2fM, $%.2fM left",
            user_id, removed["name"], player_id, refund, remaining,
        )
        return TransferResult(
            action="sell",
            user_id=user_id,
            squad_id=squad_id,
            player_id=player_id,
            player_name=removed["name"],
            price=removed["fantasy_price"],
            refund=refund,
            remaining_budget=remaining,
        )

    def _has_starter_slot(self, squad: dict, position: str) -> bool:
        formation = get_formation(squad["formation"])
        starters = [
            m for m in self.roster.get_members(squad["squad_id"]) if m["is_starter"]
        ]
        if len(starters) >= self.config.max_starters:
            return False
        taken = sum(1 for m in starters if m["position"] == position)
        return taken < formation.slots_for(position)
