from __future__ import annotations

import math
import random
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import pandas as pd

CHECKPOINTS: tuple[str, ...] = ("q1", "halftime", "q3", "final")
CHECKPOINT_LABELS: dict[str, str] = {"q1": "Q1", "halftime": "Halftime", "q3": "Q3", "final": "Final"}
TEAM_KEYS: tuple[str, ...] = ("teamA", "teamB")

DIGITS: tuple[int, ...] = tuple(range(10))
PLACEHOLDER_LABEL = "?"

_NON_DIGIT = re.compile(r"[^0-9]")


def normalize_digit(value: Any) -> int:
    """Coerce anything into a single digit: first decimal character of its text, else 0."""
    cleaned = _NON_DIGIT.sub("", str(value))[:1]
    n = int(cleaned) if cleaned else 0
    return max(0, min(9, n))


def is_permutation(values: Any) -> bool:
    if not isinstance(values, (list, tuple)) or len(values) != 10:
        return False
    for x in values:
        if isinstance(x, bool) or not isinstance(x, int) or x < 0 or x > 9:
            return False
    return len(set(values)) == 10


# Permutations travel as {"top": [...], "left": [...], "randomized": bool}.


def identity() -> list[int]:
    return list(DIGITS)


def shuffle(rng: random.Random | None = None) -> list[int]:
    digits = identity()
    (rng or random).shuffle(digits)
    return digits


def reset_numbers() -> dict[str, Any]:
    return {"top": identity(), "left": identity(), "randomized": False}


def draw_numbers(rng: random.Random | None = None) -> dict[str, Any]:
    return {"top": shuffle(rng), "left": shuffle(rng), "randomized": True}


def axis_labels(numbers: Mapping[str, Any], axis: str) -> list[str]:
    """Header labels for one axis; placeholders until the digits have been drawn."""
    if not numbers.get("randomized"):
        return [PLACEHOLDER_LABEL] * 10
    return [str(d) for d in numbers.get(axis, [])]


def cell_key(row: int, col: int) -> str:
    if not (0 <= row <= 9 and 0 <= col <= 9):
        raise ValueError(f"Cell out of range: ({row}, {col})")
    return f"{row}-{col}"


def row_col_from_key(key: str) -> tuple[int, int]:
    row, _, col = key.partition("-")
    return int(row), int(col)


def all_cell_keys() -> list[str]:
    return [cell_key(r, c) for r in DIGITS for c in DIGITS]


@dataclass(frozen=True)
class Resolution:
    team_a_last: int
    team_b_last: int
    row_index: int
    col_index: int
    valid: bool

    @property
    def cell(self) -> tuple[int, int] | None:
        return (self.row_index, self.col_index) if self.valid else None


def _position(seq: Iterable[Any], value: int) -> int:
    for i, x in enumerate(seq):
        if x == value:
            return i
    return -1


def resolve(
    top: Iterable[Any],
    left: Iterable[Any],
    team_a_digit: Any,
    team_b_digit: Any,
) -> Resolution:
    a = normalize_digit(team_a_digit)
    b = normalize_digit(team_b_digit)
    col_index = _position(top, a)
    row_index = _position(left, b)
    return Resolution(
        team_a_last=a,
        team_b_last=b,
        row_index=row_index,
        col_index=col_index,
        valid=row_index >= 0 and col_index >= 0,
    )


def compute_winners(numbers: Mapping[str, Any], scoreboard: Mapping[str, Any]) -> dict[str, Resolution]:
    """Resolve every checkpoint against the current permutations. Never cache the result."""
    team_a = scoreboard.get("teamA") or {}
    team_b = scoreboard.get("teamB") or {}
    return {
        cp: resolve(numbers.get("top") or [], numbers.get("left") or [], team_a.get(cp, 0), team_b.get(cp, 0))
        for cp in CHECKPOINTS
    }


def is_revealed(reveals: Mapping[str, Any], checkpoint: str) -> bool:
    if checkpoint not in CHECKPOINTS:
        raise ValueError(f"Unknown checkpoint: {checkpoint!r}")
    return bool(reveals.get(checkpoint, False))


def visible_winner(
    checkpoint: str,
    resolution: Resolution,
    reveals: Mapping[str, Any],
    *,
    admin: bool = False,
) -> Resolution | None:
    """The resolution a viewer may see, or None for "not yet revealed"."""
    if not resolution.valid:
        return None
    if admin or is_revealed(reveals, checkpoint):
        return resolution
    return None


def winning_cells(state: Mapping[str, Any], *, admin: bool = False) -> dict[tuple[int, int], list[str]]:
    """Map each visible winning cell to the checkpoints it wins."""
    winners = compute_winners(state["numbers"], state["scoreboard"])
    cells: dict[tuple[int, int], list[str]] = {}
    for cp, res in winners.items():
        shown = visible_winner(cp, res, state["reveals"], admin=admin)
        if shown is not None:
            cells.setdefault((shown.row_index, shown.col_index), []).append(cp)
    return cells


def filled_count(grid: Mapping[str, Any]) -> int:
    return sum(1 for cell in grid.values() if str((cell or {}).get("name") or "").strip())


def amount_raised(grid: Mapping[str, Any], per_square_amount: float) -> float:
    return filled_count(grid) * per_square_amount


def progress_percent(raised: float, goal_amount: float) -> int:
    if goal_amount <= 0:
        return 0
    return min(100, math.floor(100 * raised / goal_amount + 0.5))


def board_frame(state: Mapping[str, Any]) -> pd.DataFrame:
    numbers = state["numbers"]
    cells = [[str(state["grid"][cell_key(r, c)].get("name") or "") for c in DIGITS] for r in DIGITS]
    return pd.DataFrame(
        cells,
        index=pd.Index(axis_labels(numbers, "left"), name=state["teams"]["left"]),
        columns=pd.Index(axis_labels(numbers, "top"), name=state["teams"]["top"]),
    )


def winners_frame(state: Mapping[str, Any], *, admin: bool = False) -> pd.DataFrame:
    teams = state["teams"]
    numbers = state["numbers"]
    winners = compute_winners(numbers, state["scoreboard"])
    left_labels = axis_labels(numbers, "left")
    top_labels = axis_labels(numbers, "top")
    rows = []
    for cp in CHECKPOINTS:
        res = winners[cp]
        shown = visible_winner(cp, res, state["reveals"], admin=admin)
        if shown is None:
            square = "Not yet revealed" if res.valid else "—"
            name = square
        else:
            name = str(state["grid"][cell_key(shown.row_index, shown.col_index)].get("name") or "").strip()
            name = name or "(unfilled)"
            square = f"{left_labels[shown.row_index]}–{top_labels[shown.col_index]}"
        rows.append(
            {
                "Checkpoint": CHECKPOINT_LABELS[cp],
                f"{teams['top']} last digit": res.team_a_last if shown else "",
                f"{teams['left']} last digit": res.team_b_last if shown else "",
                "Square": square,
                "Winner": name,
                "Prize": str(state.get("payouts", {}).get(cp) or ""),
            }
        )
    return pd.DataFrame(rows)
