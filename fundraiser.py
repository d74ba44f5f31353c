"""The fundraiser aggregate: defaults, merge-with-defaults loading, snapshots and guarded edits.

The aggregate is a plain JSON-shaped dict. Every edit returns a new dict; nothing
here mutates its argument, and nothing here does I/O.
"""
from __future__ import annotations

import copy
import json
import logging
import random
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

import game_logic
import security

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_CELL_KEY = re.compile(r"^([0-9])-([0-9])$")

DEFAULT_META: dict[str, str] = {
    "title": "Super Bowl Squares – Westford Food Pantry Fundraiser",
    "subtitle": "Game day fun for a great cause 💙",
    "introHeadline": "Super Bowl Squares to Support the Westford Food Pantry",
    "introBody": (
        "Hi! This fundraiser is run by our daughter to support the Westford Food Pantry. "
        "Thank you for helping families in our community."
    ),
}

DEFAULT_RULES: list[str] = [
    "Each square is one entry.",
    "Numbers across the top and side will be randomized AFTER all squares are filled.",
    "Winners are determined by the LAST digit of each team’s score at Q1, Halftime, Q3, and Final.",
    "We will contact winners after the game.",
]

DEFAULT_NOTES = "All proceeds go to the Westford Food Pantry. Thank you for supporting our community!"

DEFAULT_PER_SQUARE_AMOUNT = 5
DEFAULT_GOAL_AMOUNT = 500

# Groups an admin may edit as free-form settings; each maps to its known keys.
SETTINGS_SECTIONS: dict[str, tuple[str, ...]] = {
    "meta": tuple(DEFAULT_META),
    "teams": ("top", "left"),
    "rules": ("bullets", "notes"),
    "payouts": game_logic.CHECKPOINTS,
    "fundraising": ("perSquareAmount", "goalAmount"),
}


class ImportRejected(ValueError):
    pass


class EditNotAllowed(PermissionError):
    pass


def default_state() -> dict[str, Any]:
    return {
        "version": SCHEMA_VERSION,
        "meta": dict(DEFAULT_META),
        "teams": {"top": "Team A", "left": "Team B"},
        "numbers": game_logic.reset_numbers(),
        "rules": {"bullets": list(DEFAULT_RULES), "notes": DEFAULT_NOTES},
        "grid": {key: {"name": ""} for key in game_logic.all_cell_keys()},
        "scoreboard": {team: {cp: 0 for cp in game_logic.CHECKPOINTS} for team in game_logic.TEAM_KEYS},
        "reveals": {cp: False for cp in game_logic.CHECKPOINTS},
        "payouts": {cp: "" for cp in game_logic.CHECKPOINTS},
        "fundraising": {"perSquareAmount": DEFAULT_PER_SQUARE_AMOUNT, "goalAmount": DEFAULT_GOAL_AMOUNT},
        "admin": {"enabled": False, "passcodeSalt": "", "passcodeHash": ""},
        "ui": {"lockedBoard": False},
        "updatedAt": None,
    }


def _as_text(value: Any, default: str) -> str:
    if value is None or isinstance(value, (dict, list)):
        return default
    return str(value)


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return bool(value)
    return default


def _as_amount(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return default
    if amount != amount or amount < 0 or amount == float("inf"):
        return default
    return int(amount) if amount.is_integer() else amount


def _section(persisted: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = persisted.get(key)
    return value if isinstance(value, Mapping) else {}


def _merge_grid(raw: Any, grid: dict[str, dict[str, str]]) -> None:
    def _name(cell: Any) -> str:
        if isinstance(cell, Mapping):
            return _as_text(cell.get("name"), "")
        if isinstance(cell, str):
            return cell
        return ""

    if isinstance(raw, Mapping):
        for key, cell in raw.items():
            if _CELL_KEY.match(str(key)):
                grid[str(key)] = {"name": _name(cell)}
    elif isinstance(raw, list):
        # Older browser copies stored the grid as ten nested rows.
        for r, row in enumerate(raw[:10]):
            if not isinstance(row, list):
                continue
            for c, cell in enumerate(row[:10]):
                grid[game_logic.cell_key(r, c)] = {"name": _name(cell)}


def _merge_admin(raw: Mapping[str, Any], admin: dict[str, Any]) -> None:
    admin["enabled"] = _as_bool(raw.get("enabled"), admin["enabled"])
    salt = _as_text(raw.get("passcodeSalt"), "")
    digest = _as_text(raw.get("passcodeHash"), "")
    if salt and digest:
        admin["passcodeSalt"], admin["passcodeHash"] = salt, digest
        return
    legacy = _as_text(raw.get("passcode"), "")
    if legacy:
        admin["passcodeSalt"], admin["passcodeHash"] = security.hash_password(legacy)
        return
    # A gate with no passcode could never be unlocked.
    admin["enabled"] = False


def _overlay(persisted: Mapping[str, Any]) -> dict[str, Any]:
    state = default_state()

    meta = _section(persisted, "meta")
    for key, default in DEFAULT_META.items():
        state["meta"][key] = _as_text(meta.get(key), default)

    teams = _section(persisted, "teams")
    for key in ("top", "left"):
        state["teams"][key] = _as_text(teams.get(key), state["teams"][key])

    numbers = _section(persisted, "numbers")
    drawn = _as_bool(numbers.get("randomized"), False)
    for axis in ("top", "left"):
        if game_logic.is_permutation(numbers.get(axis)):
            state["numbers"][axis] = list(numbers[axis])
        else:
            drawn = False
    if not drawn:
        state["numbers"] = game_logic.reset_numbers()

    rules = _section(persisted, "rules")
    bullets = rules.get("bullets")
    if isinstance(bullets, list):
        state["rules"]["bullets"] = [_as_text(b, "") for b in bullets if _as_text(b, "").strip()]
    state["rules"]["notes"] = _as_text(rules.get("notes"), DEFAULT_NOTES)

    _merge_grid(persisted.get("grid"), state["grid"])

    scoreboard = _section(persisted, "scoreboard")
    for team in game_logic.TEAM_KEYS:
        digits = scoreboard.get(team)
        if isinstance(digits, Mapping):
            for cp in game_logic.CHECKPOINTS:
                if cp in digits:
                    state["scoreboard"][team][cp] = game_logic.normalize_digit(digits[cp])

    reveals = _section(persisted, "reveals")
    payouts = _section(persisted, "payouts")
    for cp in game_logic.CHECKPOINTS:
        state["reveals"][cp] = _as_bool(reveals.get(cp), False)
        state["payouts"][cp] = _as_text(payouts.get(cp), "")

    fundraising = _section(persisted, "fundraising")
    for key in ("perSquareAmount", "goalAmount"):
        state["fundraising"][key] = _as_amount(fundraising.get(key), state["fundraising"][key])

    _merge_admin(_section(persisted, "admin"), state["admin"])

    ui = _section(persisted, "ui")
    state["ui"]["lockedBoard"] = _as_bool(ui.get("lockedBoard"), False)

    updated_at = persisted.get("updatedAt")
    state["updatedAt"] = updated_at if isinstance(updated_at, str) else None
    return state


def load_merged(persisted: str | bytes | Mapping[str, Any] | None) -> dict[str, Any]:
    """Overlay whatever was persisted onto fresh defaults, one field group at a time.

    Unknown top-level keys are dropped. Absent, unparseable or non-object input
    yields the defaults; this never raises.
    """
    if persisted is None:
        return default_state()
    if isinstance(persisted, (str, bytes)):
        try:
            persisted = json.loads(persisted)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Persisted state is not valid JSON, using defaults: %s", e)
            return default_state()
    if not isinstance(persisted, Mapping):
        logger.warning("Persisted state is a %s, not an object; using defaults", type(persisted).__name__)
        return default_state()
    return _overlay(persisted)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def stamped(state: Mapping[str, Any], *, now: str | None = None) -> dict[str, Any]:
    snapshot = copy.deepcopy(dict(state))
    snapshot["updatedAt"] = now or now_iso()
    return snapshot


def serialize(state: Mapping[str, Any], *, now: str | None = None, indent: int | None = 2) -> str:
    return json.dumps(stamped(state, now=now), indent=indent, ensure_ascii=False)


def parse_import(text: str | bytes) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ImportRejected("That file wasn't valid JSON.") from e
    if not isinstance(data, Mapping):
        raise ImportRejected("Expected a JSON object describing the board.")
    return load_merged(data)


# Derived figures


def filled_count(state: Mapping[str, Any]) -> int:
    return game_logic.filled_count(state["grid"])


def amount_raised(state: Mapping[str, Any]) -> float:
    return game_logic.amount_raised(state["grid"], state["fundraising"]["perSquareAmount"])


def progress_percent(state: Mapping[str, Any]) -> int:
    return game_logic.progress_percent(amount_raised(state), state["fundraising"]["goalAmount"])


# Guards


def gate_enabled(state: Mapping[str, Any]) -> bool:
    return bool(state["admin"]["enabled"])


def admin_mode(state: Mapping[str, Any], *, authed: bool) -> bool:
    """Passcode-gate variant: admin when the gate is off or the session unlocked it."""
    return authed or not gate_enabled(state)


def can_edit_board(state: Mapping[str, Any], *, admin: bool) -> bool:
    return admin and not state["ui"]["lockedBoard"]


def _require_admin(admin: bool) -> None:
    if not admin:
        raise EditNotAllowed("Admin access is required to change the board.")


def _require_open(state: Mapping[str, Any], admin: bool) -> None:
    _require_admin(admin)
    if state["ui"]["lockedBoard"]:
        raise EditNotAllowed("The board is locked. Unlock it to make changes.")


def _copy(state: Mapping[str, Any]) -> dict[str, Any]:
    return copy.deepcopy(dict(state))


# Board edits: need an open board and an admin


def set_cell_name(state: Mapping[str, Any], row: int, col: int, name: str, *, admin: bool) -> dict[str, Any]:
    _require_open(state, admin)
    key = game_logic.cell_key(row, col)
    nxt = _copy(state)
    nxt["grid"][key] = {**nxt["grid"][key], "name": str(name or "")}
    return nxt


def clear_cell(state: Mapping[str, Any], row: int, col: int, *, admin: bool) -> dict[str, Any]:
    return set_cell_name(state, row, col, "", admin=admin)


def set_score_digit(state: Mapping[str, Any], team: str, checkpoint: str, value: Any, *, admin: bool) -> dict[str, Any]:
    if team not in game_logic.TEAM_KEYS:
        raise ValueError(f"Unknown team: {team!r}")
    if checkpoint not in game_logic.CHECKPOINTS:
        raise ValueError(f"Unknown checkpoint: {checkpoint!r}")
    _require_open(state, admin)
    nxt = _copy(state)
    nxt["scoreboard"][team][checkpoint] = game_logic.normalize_digit(value)
    return nxt


def set_reveal(state: Mapping[str, Any], checkpoint: str, revealed: bool, *, admin: bool) -> dict[str, Any]:
    if checkpoint not in game_logic.CHECKPOINTS:
        raise ValueError(f"Unknown checkpoint: {checkpoint!r}")
    _require_open(state, admin)
    nxt = _copy(state)
    nxt["reveals"][checkpoint] = bool(revealed)
    return nxt


def randomize_numbers(
    state: Mapping[str, Any],
    *,
    admin: bool,
    axes: Iterable[str] = ("top", "left"),
    rng: random.Random | None = None,
) -> dict[str, Any]:
    _require_open(state, admin)
    nxt = _copy(state)
    for axis in axes:
        if axis not in ("top", "left"):
            raise ValueError(f"Unknown axis: {axis!r}")
        nxt["numbers"][axis] = game_logic.shuffle(rng)
    nxt["numbers"]["randomized"] = True
    return nxt


def reset_numbers(state: Mapping[str, Any], *, admin: bool) -> dict[str, Any]:
    _require_open(state, admin)
    nxt = _copy(state)
    nxt["numbers"] = game_logic.reset_numbers()
    return nxt


def reset_board(state: Mapping[str, Any], *, admin: bool) -> dict[str, Any]:
    """Clear names, scores, reveals and numbers; keep settings and admin config."""
    _require_open(state, admin)
    fresh = default_state()
    nxt = _copy(state)
    for key in ("grid", "numbers", "scoreboard", "reveals"):
        nxt[key] = fresh[key]
    return nxt


# Settings edits: need an admin, allowed while locked


def set_locked(state: Mapping[str, Any], locked: bool, *, admin: bool) -> dict[str, Any]:
    _require_admin(admin)
    nxt = _copy(state)
    nxt["ui"]["lockedBoard"] = bool(locked)
    return nxt


def update_section(state: Mapping[str, Any], section: str, changes: Mapping[str, Any], *, admin: bool) -> dict[str, Any]:
    if section not in SETTINGS_SECTIONS:
        raise ValueError(f"Not an editable section: {section!r}")
    _require_admin(admin)
    nxt = _copy(state)
    known = SETTINGS_SECTIONS[section]
    nxt[section].update({k: v for k, v in changes.items() if k in known})
    merged = _overlay(nxt)
    nxt[section] = merged[section]
    return nxt


def set_admin_gate(state: Mapping[str, Any], enabled: bool, *, admin: bool) -> dict[str, Any]:
    _require_admin(admin)
    if enabled and not state["admin"]["passcodeHash"]:
        raise EditNotAllowed("Set a passcode before turning on the gate.")
    nxt = _copy(state)
    nxt["admin"]["enabled"] = bool(enabled)
    return nxt


def set_passcode(state: Mapping[str, Any], passcode: str, *, admin: bool) -> dict[str, Any]:
    _require_admin(admin)
    if not passcode and state["admin"]["enabled"]:
        raise EditNotAllowed("Turn off the passcode gate before clearing the passcode.")
    nxt = _copy(state)
    if passcode:
        nxt["admin"]["passcodeSalt"], nxt["admin"]["passcodeHash"] = security.hash_password(passcode)
    else:
        nxt["admin"]["passcodeSalt"], nxt["admin"]["passcodeHash"] = "", ""
    return nxt
