"""Unit tests for the formation catalog."""

import pytest

from fantasy.exceptions import InvalidFormation, SquadRuleError
from fantasy.formations import FORMATION_CODES, FORMATIONS, get_formation


class TestCatalog:
    def test_seven_formations(self):
        assert set(FORMATION_CODES) == {
            "4-3-3", "4-4-2", "3-5-2", "3-4-3", "4-5-1", "5-3-2", "5-4-1",
        }

    @pytest.mark.parametrize("code", sorted(FORMATIONS))
    def test_every_formation_fields_eleven_with_one_keeper(self, code):
        f = get_formation(code)
        assert f.total_slots == 11
        assert f.slots_for("GK") == 1
        assert f.slots_for("DEF") + f.slots_for("MID") + f.slots_for("FWD") == 10

    def test_slot_counts_follow_code(self):
        f = get_formation("3-4-3")
        assert f.slots == {"GK": 1, "DEF": 3, "MID": 4, "FWD": 3}

    def test_unknown_position_has_no_slots(self):
        assert get_formation("4-3-3").slots_for("COACH") == 0


class TestInvalidFormation:
    def test_unknown_code_raises(self):
        """Lookup of an unknown code raises InvalidFormation listing the valid codes."""
        with pytest.raises(InvalidFormation, match="4-3-3") as exc_info:
            get_formation("4-2-4")
        assert isinstance(exc_info.value, SquadRuleError)
        assert "4-2-4" in exc_info.value.reason
