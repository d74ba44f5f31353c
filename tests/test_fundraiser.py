import json
import random

import pytest

import fundraiser
import game_logic
import security


def _without_timestamp(state):
    return {k: v for k, v in state.items() if k != "updatedAt"}


def test_default_state_shape():
    state = fundraiser.default_state()
    assert len(state["grid"]) == 100
    assert all(cell == {"name": ""} for cell in state["grid"].values())
    assert state["numbers"] == {"top": list(range(10)), "left": list(range(10)), "randomized": False}
    assert state["reveals"] == {cp: False for cp in game_logic.CHECKPOINTS}
    assert state["ui"]["lockedBoard"] is False
    assert state["scoreboard"]["teamA"] == {"q1": 0, "halftime": 0, "q3": 0, "final": 0}


def test_default_state_is_deterministic():
    assert fundraiser.default_state() == fundraiser.default_state()


def test_round_trip_reproduces_defaults():
    default = fundraiser.default_state()
    loaded = fundraiser.load_merged(fundraiser.serialize(default))
    assert _without_timestamp(loaded) == _without_timestamp(default)
    assert loaded["updatedAt"]


def test_serialize_stamps_timestamp_without_touching_input():
    state = fundraiser.default_state()
    text = fundraiser.serialize(state, now="2026-02-08T23:00:00+00:00")
    assert json.loads(text)["updatedAt"] == "2026-02-08T23:00:00+00:00"
    assert state["updatedAt"] is None


@pytest.mark.parametrize("persisted", [None, "", "{not json", "[1, 2]", "42", {}, b"null"])
def test_load_merged_falls_back_to_defaults(persisted):
    assert fundraiser.load_merged(persisted) == fundraiser.default_state()


def test_load_merged_partial_document_keeps_new_fields():
    old = {
        "meta": {"title": "Old title"},
        "teams": {"top": "Chiefs"},
        "scoreboard": {"teamA": {"q1": "17"}},
        "grid": {"4-7": {"name": "Alice"}},
    }
    state = fundraiser.load_merged(old)
    assert state["meta"]["title"] == "Old title"
    assert state["meta"]["subtitle"] == fundraiser.DEFAULT_META["subtitle"]
    assert state["teams"] == {"top": "Chiefs", "left": "Team B"}
    assert state["scoreboard"]["teamA"]["q1"] == 1
    assert state["scoreboard"]["teamB"] == {"q1": 0, "halftime": 0, "q3": 0, "final": 0}
    assert state["grid"]["4-7"]["name"] == "Alice"
    assert len(state["grid"]) == 100
    assert state["reveals"] == {cp: False for cp in game_logic.CHECKPOINTS}
    assert state["fundraising"]["perSquareAmount"] == 5


def test_load_merged_drops_unknown_keys():
    state = fundraiser.load_merged({"hacked": True, "meta": {"extra": "x"}, "grid": {"99": {"name": "y"}}})
    assert "hacked" not in state
    assert "extra" not in state["meta"]
    assert "99" not in state["grid"]
    assert set(state) == set(fundraiser.default_state())


def test_load_merged_treats_corrupt_draw_as_undrawn():
    state = fundraiser.load_merged({"numbers": {"top": [1, 1, 2, 3, 4, 5, 6, 7, 8, 9], "left": list(range(9, -1, -1)), "randomized": True}})
    assert state["numbers"] == game_logic.reset_numbers()
    assert game_logic.axis_labels(state["numbers"], "top") == ["?"] * 10
    assert game_logic.axis_labels(state["numbers"], "left") == ["?"] * 10


def test_load_merged_partial_axis_is_undrawn():
    state = fundraiser.load_merged({"numbers": {"top": list(range(9, -1, -1)), "left": [0, 1], "randomized": True}})
    assert state["numbers"] == game_logic.reset_numbers()


def test_load_merged_keeps_valid_draw():
    top = [3, 1, 4, 0, 5, 9, 2, 6, 8, 7]
    left = list(range(9, -1, -1))
    state = fundraiser.load_merged({"numbers": {"top": top, "left": left, "randomized": True}})
    assert state["numbers"] == {"top": top, "left": left, "randomized": True}


def test_load_merged_accepts_nested_grid():
    rows = [[{"name": ""} for _ in range(10)] for _ in range(10)]
    rows[4][7] = {"name": "Legacy"}
    state = fundraiser.load_merged({"grid": rows})
    assert state["grid"]["4-7"]["name"] == "Legacy"
    assert len(state["grid"]) == 100


def test_load_merged_hashes_legacy_passcode():
    state = fundraiser.load_merged({"admin": {"enabled": True, "passcode": "go-pats"}})
    assert "passcode" not in state["admin"]
    assert state["admin"]["enabled"] is True
    assert security.check_passcode(state["admin"], "go-pats")
    assert not security.check_passcode(state["admin"], "wrong")


def test_load_merged_coerces_bad_types():
    state = fundraiser.load_merged(
        {
            "meta": {"title": {"nested": 1}},
            "reveals": {"q1": "yes", "q3": True},
            "ui": {"lockedBoard": 1},
            "fundraising": {"perSquareAmount": "10", "goalAmount": -5},
            "rules": {"bullets": ["One", "", None, "Two"]},
        }
    )
    assert state["meta"]["title"] == fundraiser.DEFAULT_META["title"]
    assert state["reveals"]["q1"] is False
    assert state["reveals"]["q3"] is True
    assert state["ui"]["lockedBoard"] is True
    assert state["fundraising"] == {"perSquareAmount": 10, "goalAmount": fundraiser.DEFAULT_GOAL_AMOUNT}
    assert state["rules"]["bullets"] == ["One", "Two"]


def test_parse_import_rejects_malformed_json():
    with pytest.raises(fundraiser.ImportRejected):
        fundraiser.parse_import("{oops")
    with pytest.raises(fundraiser.ImportRejected):
        fundraiser.parse_import("[]")


def test_parse_import_merges_with_defaults():
    state = fundraiser.parse_import(json.dumps({"teams": {"left": "Eagles"}}))
    assert state["teams"] == {"top": "Team A", "left": "Eagles"}
    assert len(state["grid"]) == 100


def test_derived_figures():
    state = fundraiser.default_state()
    for key in game_logic.all_cell_keys()[:37]:
        state["grid"][key]["name"] = "Fan"
    assert fundraiser.filled_count(state) == 37
    assert fundraiser.amount_raised(state) == 185
    assert fundraiser.progress_percent(state) == 37


def test_admin_mode():
    state = fundraiser.default_state()
    assert fundraiser.admin_mode(state, authed=False)
    state["admin"]["enabled"] = True
    assert not fundraiser.admin_mode(state, authed=False)
    assert fundraiser.admin_mode(state, authed=True)


def test_set_cell_name_returns_new_state():
    state = fundraiser.default_state()
    updated = fundraiser.set_cell_name(state, 4, 7, "Alice", admin=True)
    assert updated["grid"]["4-7"]["name"] == "Alice"
    assert state["grid"]["4-7"]["name"] == ""
    cleared = fundraiser.clear_cell(updated, 4, 7, admin=True)
    assert cleared["grid"]["4-7"]["name"] == ""


@pytest.mark.parametrize(
    "edit",
    [
        lambda s, admin: fundraiser.set_cell_name(s, 0, 0, "X", admin=admin),
        lambda s, admin: fundraiser.set_score_digit(s, "teamA", "q1", 3, admin=admin),
        lambda s, admin: fundraiser.set_reveal(s, "q1", True, admin=admin),
        lambda s, admin: fundraiser.randomize_numbers(s, admin=admin),
        lambda s, admin: fundraiser.reset_numbers(s, admin=admin),
        lambda s, admin: fundraiser.reset_board(s, admin=admin),
    ],
)
def test_board_edits_need_open_board_and_admin(edit):
    state = fundraiser.default_state()
    with pytest.raises(fundraiser.EditNotAllowed):
        edit(state, False)
    locked = fundraiser.set_locked(state, True, admin=True)
    with pytest.raises(fundraiser.EditNotAllowed):
        edit(locked, True)
    edit(state, True)


def test_locked_board_can_still_be_unlocked_and_configured():
    locked = fundraiser.set_locked(fundraiser.default_state(), True, admin=True)
    assert not fundraiser.can_edit_board(locked, admin=True)
    renamed = fundraiser.update_section(locked, "teams", {"top": "Chiefs"}, admin=True)
    assert renamed["teams"]["top"] == "Chiefs"
    unlocked = fundraiser.set_locked(renamed, False, admin=True)
    assert fundraiser.can_edit_board(unlocked, admin=True)
    with pytest.raises(fundraiser.EditNotAllowed):
        fundraiser.set_locked(unlocked, True, admin=False)


def test_set_score_digit_normalizes():
    state = fundraiser.set_score_digit(fundraiser.default_state(), "teamB", "final", "24", admin=True)
    assert state["scoreboard"]["teamB"]["final"] == 2
    with pytest.raises(ValueError):
        fundraiser.set_score_digit(state, "teamC", "final", 1, admin=True)
    with pytest.raises(ValueError):
        fundraiser.set_reveal(state, "overtime", True, admin=True)


def test_randomize_numbers_single_axis():
    state = fundraiser.default_state()
    drawn = fundraiser.randomize_numbers(state, admin=True, axes=("top",), rng=random.Random(11))
    assert drawn["numbers"]["randomized"] is True
    assert drawn["numbers"]["left"] == list(range(10))
    assert sorted(drawn["numbers"]["top"]) == list(range(10))
    reset = fundraiser.reset_numbers(drawn, admin=True)
    assert reset["numbers"] == game_logic.reset_numbers()


def test_reset_board_keeps_settings():
    state = fundraiser.default_state()
    state = fundraiser.update_section(state, "meta", {"title": "Our Party"}, admin=True)
    state = fundraiser.set_cell_name(state, 1, 1, "Carol", admin=True)
    state = fundraiser.set_reveal(state, "q3", True, admin=True)
    state = fundraiser.randomize_numbers(state, admin=True, rng=random.Random(9))
    state = fundraiser.set_passcode(state, "secret", admin=True)

    reset = fundraiser.reset_board(state, admin=True)
    assert reset["meta"]["title"] == "Our Party"
    assert fundraiser.filled_count(reset) == 0
    assert reset["reveals"]["q3"] is False
    assert reset["numbers"]["randomized"] is False
    assert security.check_passcode(reset["admin"], "secret")


def test_update_section_coerces_and_filters():
    state = fundraiser.update_section(
        fundraiser.default_state(),
        "fundraising",
        {"perSquareAmount": 10.0, "goalAmount": "abc", "bogus": 1},
        admin=True,
    )
    assert state["fundraising"] == {"perSquareAmount": 10, "goalAmount": fundraiser.DEFAULT_GOAL_AMOUNT}
    with pytest.raises(ValueError):
        fundraiser.update_section(state, "admin", {"enabled": True}, admin=True)


def test_set_passcode_and_clear():
    state = fundraiser.set_passcode(fundraiser.default_state(), "hunter2", admin=True)
    assert state["admin"]["passcodeHash"]
    assert "hunter2" not in json.dumps(state)
    cleared = fundraiser.set_passcode(state, "", admin=True)
    assert cleared["admin"]["passcodeHash"] == ""
    assert not security.check_passcode(cleared["admin"], "")


def test_gate_needs_a_passcode_first():
    state = fundraiser.default_state()
    with pytest.raises(fundraiser.EditNotAllowed):
        fundraiser.set_admin_gate(state, True, admin=True)

    state = fundraiser.set_passcode(state, "1234", admin=True)
    gated = fundraiser.set_admin_gate(state, True, admin=True)
    assert gated["admin"]["enabled"] is True
    assert not fundraiser.admin_mode(gated, authed=False)
    assert security.check_passcode(gated["admin"], "1234")


def test_passcode_cannot_be_cleared_while_gated():
    state = fundraiser.set_passcode(fundraiser.default_state(), "1234", admin=True)
    gated = fundraiser.set_admin_gate(state, True, admin=True)
    with pytest.raises(fundraiser.EditNotAllowed):
        fundraiser.set_passcode(gated, "", admin=True)
    changed = fundraiser.set_passcode(gated, "5678", admin=True)
    assert security.check_passcode(changed["admin"], "5678")

    ungated = fundraiser.set_admin_gate(gated, False, admin=True)
    cleared = fundraiser.set_passcode(ungated, "", admin=True)
    assert cleared["admin"]["passcodeHash"] == ""


def test_load_merged_disables_gate_without_passcode():
    state = fundraiser.load_merged({"admin": {"enabled": True, "passcodeSalt": "", "passcodeHash": ""}})
    assert state["admin"]["enabled"] is False
    assert fundraiser.admin_mode(state, authed=False)
