from __future__ import annotations

import copy
import html
import logging
import os
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import pandas as pd
import streamlit as st
from dotenv import load_dotenv

import db
import fundraiser
import game_logic
import security

logger = logging.getLogger(__name__)

_SECRET_KEYS = (
    "SQUARES_BACKEND",
    "SQUARES_STATE_PATH",
    "SQUARES_DB_PATH",
    "SQUARES_ADMIN_EMAILS",
    "SQUARES_DOCUMENT_ID",
    "SQUARES_REFRESH_SECONDS",
    "SQUARES_LOG_LEVEL",
    "DATABASE_URL",
    "NEON_DATABASE_URL",
    "POSTGRES_URL",
    "POSTGRES_URL_NON_POOLING",
)

_GLOBAL_CSS = """
<style>
/* Slight rounding for Streamlit containers to make the UI feel softer. */
div[data-testid="stElementContainer"] {
  border-radius: 0.85rem;
}
</style>
"""

_GRID_CSS = """
<style>
.sb-grid-scroll { width: 100%; overflow-x: auto; -webkit-overflow-scrolling: touch; padding-bottom: 0.35rem; }
.sb-grid { border-collapse: collapse; min-width: 900px; }
.sb-grid th, .sb-grid td { border: 1px solid #E5E7EB; }
.sb-grid th { background: #FFFFFF; padding: 0.4rem; text-align: center; font-weight: 700; }
.sb-grid th.corner { font-size: 0.75rem; font-weight: 500; color: #4B5563; white-space: nowrap; }
.sb-grid td { height: 4.5rem; width: 5.5rem; padding: 0.4rem; vertical-align: top; font-size: 0.85rem; }
.sb-grid td .name { font-weight: 600; overflow: hidden; text-overflow: ellipsis; white-space: nowrap; max-width: 5rem; }
.sb-grid td.win { background: #FEF3C7; }
.sb-grid .badge {
  display: inline-block;
  margin-top: 0.2rem;
  padding: 0.05rem 0.4rem;
  border-radius: 999px;
  background: #0B0F19;
  color: #FFFFFF;
  font-size: 0.7rem;
  font-weight: 700;
}
</style>
"""


class SnapshotInbox:
    """Receives store snapshots from any thread; the session drains the newest one."""

    def __init__(self) -> None:
        self._items: deque[dict[str, Any]] = deque(maxlen=1)

    def push(self, snapshot: dict[str, Any]) -> None:
        self._items.append(snapshot)

    def drain(self) -> dict[str, Any] | None:
        try:
            return self._items.pop()
        except IndexError:
            return None


def _ts_to_str(ts: int) -> str:
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")


def _iso_to_str(value: str | None) -> str:
    if not value:
        return "never"
    try:
        return datetime.fromisoformat(value).astimezone().strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return value


def _money(amount: float) -> str:
    return f"${amount:,.0f}" if float(amount).is_integer() else f"${amount:,.2f}"


@st.cache_resource
def get_store() -> db.LocalJsonStore | db.DocumentStore:
    return db.get_store()


def _hosted(store: Any) -> bool:
    return store.variant == "hosted"


def _load_board(store: Any) -> dict[str, Any]:
    try:
        raw = store.load()
    except db.StoreError as e:
        logger.error("Board load failed: %s", e)
        st.warning("Could not load the saved board; showing defaults.")
        return fundraiser.default_state()
    return fundraiser.load_merged(raw)


def init_session(store: Any) -> None:
    if "board" not in st.session_state:
        st.session_state["board"] = _load_board(store)
    st.session_state.setdefault("admin_authed", False)
    if _hosted(store) and "inbox" not in st.session_state:
        inbox = SnapshotInbox()
        st.session_state["inbox"] = inbox
        st.session_state["unsubscribe"] = store.subscribe(inbox.push)


def sync_from_store(store: Any) -> bool:
    """Replace the in-memory board with the newest snapshot the store pushed, if any."""
    if not _hosted(store):
        return False
    try:
        store.poll()
    except db.StoreError as e:
        logger.warning("Live refresh failed: %s", e)
    snapshot = st.session_state["inbox"].drain()
    if snapshot is None:
        return False
    # An untouched draft follows the published board.
    if st.session_state.get("draft") == st.session_state["board"]:
        st.session_state["draft"] = None
    st.session_state["board"] = snapshot
    return True


def current_email() -> str | None:
    user = st.user
    if not user.get("is_logged_in"):
        return None
    return user.get("email")


def is_admin(store: Any, board: dict[str, Any]) -> bool:
    if _hosted(store):
        return store.is_admin(current_email())
    return fundraiser.admin_mode(board, authed=bool(st.session_state.get("admin_authed")))


def working_board(store: Any) -> dict[str, Any]:
    """The board admin edits apply to: a private draft when hosted, the live board when local."""
    if _hosted(store):
        if st.session_state.get("draft") is None:
            st.session_state["draft"] = copy.deepcopy(st.session_state["board"])
            st.session_state.pop("draft_action", None)
        return st.session_state["draft"]
    return st.session_state["board"]


def persist(store: Any, board: dict[str, Any], *, action: str = "save", toast: str | None = None) -> bool:
    try:
        if _hosted(store):
            snapshot = store.save(board, actor_email=current_email(), action=action)
        else:
            snapshot = store.save(board)
    except db.NotAuthorized as e:
        st.session_state["flash_error"] = str(e)
        return False
    except db.StoreWriteError as e:
        logger.error("Board save failed: %s", e)
        st.session_state["flash_error"] = f"Could not save the board: {e}"
        return False
    st.session_state["board"] = snapshot
    if _hosted(store):
        st.session_state["draft"] = copy.deepcopy(snapshot)
    if toast:
        st.toast(toast)
    return True


def apply_edit(store: Any, edit: Callable[..., dict[str, Any]], *args: Any, toast: str | None = None, **kwargs: Any) -> bool:
    board = working_board(store)
    try:
        updated = edit(board, *args, admin=is_admin(store, st.session_state["board"]), **kwargs)
    except fundraiser.EditNotAllowed as e:
        st.warning(str(e))
        return False
    _commit(store, updated, toast)
    return True


def _commit(store: Any, board: dict[str, Any], toast: str | None) -> None:
    if _hosted(store):
        st.session_state["draft"] = board
        if toast:
            st.toast(toast)
        return
    # Local boards autosave; the in-memory edit stands even if the write fails.
    st.session_state["board"] = board
    persist(store, board, toast=toast)


def render_board(state: dict[str, Any], *, admin: bool) -> None:
    numbers = state["numbers"]
    teams = state["teams"]
    top_labels = game_logic.axis_labels(numbers, "top")
    left_labels = game_logic.axis_labels(numbers, "left")
    wins = game_logic.winning_cells(state, admin=admin)

    parts = [
        "<div class='sb-grid-scroll'><table class='sb-grid'><thead><tr>",
        f"<th class='corner'>{html.escape(teams['left'])} \\ {html.escape(teams['top'])}</th>",
    ]
    parts += [f"<th>{html.escape(label)}</th>" for label in top_labels]
    parts.append("</tr></thead><tbody>")
    for r in game_logic.DIGITS:
        parts.append(f"<tr><th>{html.escape(left_labels[r])}</th>")
        for c in game_logic.DIGITS:
            name = str(state["grid"][game_logic.cell_key(r, c)].get("name") or "")
            checkpoints = wins.get((r, c), [])
            badges = "".join(
                f"<span class='badge'>{'Half' if cp == 'halftime' else game_logic.CHECKPOINT_LABELS[cp]}</span> "
                for cp in checkpoints
            )
            css = " class='win'" if checkpoints else ""
            parts.append(f"<td{css}><div class='name' title='{html.escape(name)}'>{html.escape(name)}</div>{badges}</td>")
        parts.append("</tr>")
    parts.append("</tbody></table></div>")

    st.markdown(_GRID_CSS, unsafe_allow_html=True)
    st.markdown("".join(parts), unsafe_allow_html=True)


def render_progress(state: dict[str, Any]) -> None:
    filled = fundraiser.filled_count(state)
    raised = fundraiser.amount_raised(state)
    pct = fundraiser.progress_percent(state)
    c1, c2, c3 = st.columns(3)
    c1.metric("Squares filled", f"{filled}/100")
    c2.metric("Raised", _money(raised))
    c3.metric("Goal", _money(state["fundraising"]["goalAmount"]))
    st.progress(pct / 100, text=f"{pct}% of goal")


def page_intro(state: dict[str, Any]) -> None:
    meta = state["meta"]
    st.header(meta["introHeadline"])
    st.write(meta["introBody"])
    render_progress(state)
    st.divider()
    st.markdown(
        "**What you can do here**\n"
        "- Check the board to see which squares are taken.\n"
        "- See the winning squares once each quarter is revealed.\n"
        "- Read the rules so you know how winners work."
    )


def page_rules(state: dict[str, Any]) -> None:
    teams = state["teams"]
    st.header("Rules")
    st.markdown("\n".join(f"- {b}" for b in state["rules"]["bullets"]))
    if state["rules"]["notes"]:
        st.caption(state["rules"]["notes"])

    st.subheader("How winners are picked")
    st.write("Example: if the score is 17–24 at the end of the quarter, the last digits are 7 and 4.")
    st.write(f"Find 7 across the top ({teams['top']}) and 4 down the side ({teams['left']}). That square wins.")


def page_board(state: dict[str, Any], *, admin: bool) -> None:
    meta = state["meta"]
    st.header(meta["title"])
    st.caption(meta["subtitle"])
    c1, c2 = st.columns([3, 1])
    c1.caption(f"Last updated: {_iso_to_str(state.get('updatedAt'))}")
    c2.markdown("🔒 **Locked**" if state["ui"]["lockedBoard"] else "✏️ Editable")

    if not state["numbers"]["randomized"]:
        st.info("Numbers are drawn after all squares are filled. Until then the board shows ? on each side.")

    render_board(state, admin=admin)

    st.subheader("Winners")
    st.dataframe(game_logic.winners_frame(state, admin=admin), use_container_width=True, hide_index=True)
    if not admin:
        st.caption("Each quarter's winner appears here once the organizer reveals it.")


def page_admin_scores(store: Any, state: dict[str, Any], *, can_edit: bool) -> None:
    teams = state["teams"]
    st.subheader("Score last digits")
    with st.form("scores"):
        cols = st.columns(4)
        entered: dict[str, dict[str, str]] = {"teamA": {}, "teamB": {}}
        for i, cp in enumerate(game_logic.CHECKPOINTS):
            label = game_logic.CHECKPOINT_LABELS[cp]
            entered["teamA"][cp] = cols[i].text_input(
                f"{teams['top']} {label}", value=str(state["scoreboard"]["teamA"][cp]), disabled=not can_edit
            )
            entered["teamB"][cp] = cols[i].text_input(
                f"{teams['left']} {label}", value=str(state["scoreboard"]["teamB"][cp]), disabled=not can_edit
            )
        reveal_cols = st.columns(4)
        reveals = {
            cp: reveal_cols[i].checkbox(
                f"Reveal {game_logic.CHECKPOINT_LABELS[cp]}", value=state["reveals"][cp], disabled=not can_edit
            )
            for i, cp in enumerate(game_logic.CHECKPOINTS)
        }
        submitted = st.form_submit_button("Update scores", disabled=not can_edit)
    if submitted:
        board = working_board(store)
        admin = is_admin(store, st.session_state["board"])
        try:
            for team, digits in entered.items():
                for cp, value in digits.items():
                    board = fundraiser.set_score_digit(board, team, cp, value, admin=admin)
            for cp, flag in reveals.items():
                board = fundraiser.set_reveal(board, cp, flag, admin=admin)
        except fundraiser.EditNotAllowed as e:
            st.warning(str(e))
            st.stop()
        _commit(store, board, "Scores updated")
        st.rerun()


def page_admin_squares(store: Any, state: dict[str, Any], *, can_edit: bool) -> None:
    st.subheader("Squares")
    if not can_edit:
        st.caption("Squares are read-only while the board is locked.")
    editor_df = pd.DataFrame(
        [[str(state["grid"][game_logic.cell_key(r, c)].get("name") or "") for c in game_logic.DIGITS] for r in game_logic.DIGITS],
        index=[f"Row {r}" for r in game_logic.DIGITS],
        columns=[f"Col {c}" for c in game_logic.DIGITS],
    )
    edited = st.data_editor(editor_df, use_container_width=True, disabled=not can_edit, key="squares_editor")
    if st.button("Save names", type="primary", disabled=not can_edit):
        board = working_board(store)
        admin = is_admin(store, st.session_state["board"])
        changed = 0
        try:
            for r in game_logic.DIGITS:
                for c in game_logic.DIGITS:
                    name = str(edited.iat[r, c] if pd.notna(edited.iat[r, c]) else "")
                    if name != editor_df.iat[r, c]:
                        board = fundraiser.set_cell_name(board, r, c, name, admin=admin)
                        changed += 1
        except fundraiser.EditNotAllowed as e:
            st.warning(str(e))
            st.stop()
        _commit(store, board, f"Updated {changed} square(s)")
        st.rerun()

    c1, c2, c3 = st.columns(3)
    with c1:
        if st.button("Randomize numbers", disabled=not can_edit, use_container_width=True):
            if apply_edit(store, fundraiser.randomize_numbers, toast="Header numbers shuffled"):
                st.rerun()
    with c2:
        axis = st.selectbox("Redraw one side", ["top", "left"], format_func=lambda a: state["teams"][a], disabled=not can_edit)
        if st.button("Redraw side", disabled=not can_edit, use_container_width=True):
            if apply_edit(store, fundraiser.randomize_numbers, axes=(axis,), toast="Numbers redrawn"):
                st.rerun()
    with c3:
        if st.button("Reset numbers", disabled=not can_edit, use_container_width=True):
            if apply_edit(store, fundraiser.reset_numbers, toast="Header numbers set to 0–9"):
                st.rerun()

    with st.expander("Reset board (keeps settings)", expanded=False):
        st.caption("Clears every name, score, reveal and the drawn numbers.")
        confirm = st.text_input("Type RESET to confirm", value="", placeholder="RESET", key="reset_board_confirm")
        if st.button("Reset squares + scores", disabled=(not can_edit or confirm.strip() != "RESET")):
            if apply_edit(store, fundraiser.reset_board, toast="Board reset"):
                st.rerun()


def page_admin_settings(store: Any, state: dict[str, Any]) -> None:
    meta, teams = state["meta"], state["teams"]
    st.subheader("Settings")
    with st.form("settings"):
        title = st.text_input("Title", value=meta["title"])
        subtitle = st.text_input("Subtitle", value=meta["subtitle"])
        intro_headline = st.text_input("Intro headline", value=meta["introHeadline"])
        intro_body = st.text_area("Intro text", value=meta["introBody"])
        c1, c2 = st.columns(2)
        team_top = c1.text_input("Top team name", value=teams["top"])
        team_left = c2.text_input("Left team name", value=teams["left"])
        per_square = c1.number_input(
            "Amount per square", min_value=0.0, value=float(state["fundraising"]["perSquareAmount"]), step=1.0
        )
        goal = c2.number_input("Fundraising goal", min_value=0.0, value=float(state["fundraising"]["goalAmount"]), step=50.0)
        bullets = st.text_area("Rules (one per line)", value="\n".join(state["rules"]["bullets"]))
        notes = st.text_input("Rules footnote", value=state["rules"]["notes"])
        pcols = st.columns(4)
        payouts = {
            cp: pcols[i].text_input(f"{game_logic.CHECKPOINT_LABELS[cp]} prize", value=state["payouts"][cp], placeholder="$")
            for i, cp in enumerate(game_logic.CHECKPOINTS)
        }
        submitted = st.form_submit_button("Save settings")
    if submitted:
        board = working_board(store)
        admin = is_admin(store, st.session_state["board"])
        try:
            board = fundraiser.update_section(
                board,
                "meta",
                {"title": title, "subtitle": subtitle, "introHeadline": intro_headline, "introBody": intro_body},
                admin=admin,
            )
            board = fundraiser.update_section(board, "teams", {"top": team_top, "left": team_left}, admin=admin)
            board = fundraiser.update_section(
                board, "fundraising", {"perSquareAmount": per_square, "goalAmount": goal}, admin=admin
            )
            board = fundraiser.update_section(
                board, "rules", {"bullets": bullets.splitlines(), "notes": notes}, admin=admin
            )
            board = fundraiser.update_section(board, "payouts", payouts, admin=admin)
        except fundraiser.EditNotAllowed as e:
            st.warning(str(e))
            st.stop()
        _commit(store, board, "Settings saved")
        st.rerun()

    locked = st.toggle("Lock board edits", value=state["ui"]["lockedBoard"], help="Prevents changes to squares, scores and numbers")
    if locked != state["ui"]["lockedBoard"]:
        if apply_edit(store, fundraiser.set_locked, locked, toast="Board locked" if locked else "Board unlocked"):
            st.rerun()

    if _hosted(store):
        return

    st.divider()
    has_passcode = bool(state["admin"]["passcodeHash"])
    with st.form("passcode"):
        new_code = st.text_input("Admin passcode", type="password", placeholder="Set a passcode", key="new_passcode")
        set_code = st.form_submit_button("Set passcode")
    if set_code:
        if apply_edit(store, fundraiser.set_passcode, new_code, toast="Passcode updated"):
            st.rerun()

    gate = st.toggle(
        "Enable admin passcode gate",
        value=state["admin"]["enabled"],
        help="Convenience only (not strong security)",
        disabled=not (has_passcode or state["admin"]["enabled"]),
        key="passcode_gate",
    )
    if not has_passcode:
        st.caption("Set a passcode before turning on the gate.")
    if gate != state["admin"]["enabled"]:
        if apply_edit(store, fundraiser.set_admin_gate, gate, toast="Passcode gate on" if gate else "Passcode gate off"):
            # Turning the gate on signs this session out; turning it off grants admin.
            st.session_state["admin_authed"] = not gate
            st.rerun()


def page_admin_gate(state: dict[str, Any]) -> None:
    st.subheader("Admin access")
    st.write("Enter the passcode to edit the board.")
    with st.form("unlock"):
        code = st.text_input("Passcode", type="password", key="unlock_passcode")
        submitted = st.form_submit_button("Unlock")
    if submitted:
        if security.check_passcode(state["admin"], code):
            st.session_state["admin_authed"] = True
            st.toast("Admin mode enabled")
            st.rerun()
        logger.warning("Wrong admin passcode entered")
        st.error("Wrong passcode.")
    st.caption("Note: this is a simple gate (convenience only, not strong security).")


def page_admin_sign_in() -> None:
    st.subheader("Admin access")
    email = current_email()
    if email:
        st.error(f"{email} is not on the admin list.")
        return
    st.write("Sign in with an admin account to edit the board.")
    if st.button("Sign in", type="primary"):
        try:
            st.login()
        except Exception as e:
            logger.error("Sign-in is not configured: %s", e)
            st.error("Sign-in is not configured for this deployment.")


def page_admin_activity(store: Any) -> None:
    with st.expander("Recent activity", expanded=False):
        rows = store.recent_activity(limit=15)
        if not rows:
            st.caption("No activity yet.")
        for r in rows:
            st.write(f"- {_ts_to_str(int(r['created_at_ts']))}: {r['actor'] or 'Someone'} {r['action']} {r['details_json']}")
        keep = st.number_input("Keep last N entries", min_value=0, max_value=50_000, value=500, step=50)
        if st.button("Prune activity log"):
            try:
                store.prune_activity(keep_last=int(keep), actor_email=current_email())
            except db.NotAuthorized as e:
                st.error(str(e))
                st.stop()
            st.toast("Activity log pruned")
            st.rerun()


def page_admin(store: Any) -> None:
    published = st.session_state["board"]
    if not is_admin(store, published):
        if _hosted(store):
            page_admin_sign_in()
        else:
            page_admin_gate(published)
        return

    state = working_board(store)
    if _hosted(store):
        dirty = state != published
        c1, c2, c3 = st.columns([2, 1, 1])
        c1.caption("Edits stay in your draft until you save them." + (" You have unsaved changes." if dirty else ""))
        if c2.button("Save board", type="primary", disabled=not dirty, use_container_width=True):
            persist(store, state, action=st.session_state.pop("draft_action", "save"), toast="Board saved")
            st.rerun()
        if c3.button("Discard draft", disabled=not dirty, use_container_width=True):
            st.session_state["draft"] = None
            st.rerun()
        if dirty and state.get("updatedAt") != published.get("updatedAt"):
            st.info("Someone saved the board after you started editing. Saving will replace their changes.")
    elif fundraiser.gate_enabled(published) and st.button("Lock admin tab"):
        st.session_state["admin_authed"] = False
        st.rerun()

    can_edit = fundraiser.can_edit_board(state, admin=True)
    page_admin_settings(store, state)
    st.divider()
    page_admin_scores(store, state, can_edit=can_edit)
    st.divider()
    page_admin_squares(store, state, can_edit=can_edit)
    st.divider()
    st.subheader("Preview")
    page_board(state, admin=True)
    if _hosted(store):
        page_admin_activity(store)


def sidebar_transfer(store: Any, *, admin: bool) -> None:
    state = st.session_state["board"]
    st.subheader("Export / Import")
    st.download_button(
        "Export board (JSON)",
        data=fundraiser.serialize(state),
        file_name="super-bowl-squares.json",
        mime="application/json",
        use_container_width=True,
        disabled=not admin,
    )
    st.download_button(
        "Download squares (CSV)",
        data=game_logic.board_frame(state).to_csv(),
        file_name="super-bowl-squares.csv",
        mime="text/csv",
        use_container_width=True,
    )
    if not admin:
        return

    uploaded = st.file_uploader("Import board", type=["json"], key="import_file")
    if uploaded is not None and st.button("Replace board with import", use_container_width=True):
        try:
            imported = fundraiser.parse_import(uploaded.getvalue())
        except fundraiser.ImportRejected as e:
            logger.warning("Import rejected: %s", e)
            st.error(f"Import failed: {e}")
            st.stop()
        logger.info("Imported board with %s filled squares", fundraiser.filled_count(imported))
        if _hosted(store):
            st.session_state["draft"] = imported
            st.session_state["draft_action"] = "import"
            st.toast("Imported into your draft. Save to publish it.")
        else:
            st.session_state["board"] = imported
            persist(store, imported, toast="Board updated from JSON")
        st.rerun()

    confirm = st.text_input("Type RESET to wipe everything", value="", placeholder="RESET", key="wipe_confirm")
    if st.button("Reset to defaults", use_container_width=True, disabled=(confirm.strip() != "RESET")):
        fresh = fundraiser.default_state()
        if _hosted(store):
            persist(store, fresh, action="reset", toast="Board reset to defaults")
            st.rerun()
        try:
            store.clear()
        except db.StoreWriteError as e:
            st.error(str(e))
            st.stop()
        st.session_state["board"] = fresh
        st.session_state["admin_authed"] = False
        st.toast("Board reset to defaults")
        st.rerun()


def sidebar(store: Any, *, admin: bool) -> None:
    with st.sidebar:
        st.title("Squares")
        if _hosted(store):
            email = current_email()
            if email:
                st.write(f"Signed in as: {email}" + (" (admin)" if admin else ""))
                if st.button("Sign out"):
                    st.session_state["draft"] = None
                    st.logout()
            else:
                st.write("Viewing the live board.")
        else:
            st.write("Admin mode" if admin else "Viewer mode")
            if st.button("Reload saved board"):
                st.session_state["board"] = _load_board(store)
                st.rerun()
        st.divider()
        sidebar_transfer(store, admin=admin)


def _refresh_seconds() -> float:
    try:
        return max(2.0, float(os.getenv("SQUARES_REFRESH_SECONDS") or "10"))
    except ValueError:
        return 10.0


def main():
    # Local dev convenience: load `.env` beside this file if present.
    load_dotenv(Path(__file__).resolve().parent / ".env")

    st.set_page_config(page_title="Super Bowl Squares", layout="wide")
    st.markdown(_GLOBAL_CSS, unsafe_allow_html=True)

    # Streamlit secrets → env bridge (so `db.py` can read DATABASE_URL / admin emails).
    try:
        secrets = st.secrets  # type: ignore[attr-defined]
        for key in _SECRET_KEYS:
            if key in secrets and str(secrets[key]).strip():
                os.environ.setdefault(key, str(secrets[key]))
    except Exception:  # no secrets.toml
        pass

    logging.basicConfig(
        level=(os.getenv("SQUARES_LOG_LEVEL") or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    store = get_store()
    init_session(store)
    sync_from_store(store)

    if _hosted(store):

        @st.fragment(run_every=_refresh_seconds())
        def _live_sync() -> None:
            if sync_from_store(store):
                st.rerun(scope="app")

        _live_sync()

    admin = is_admin(store, st.session_state["board"])
    sidebar(store, admin=admin)

    st.title("Super Bowl Squares")
    st.caption("Intro + Rules + Live Board (names only) + Admin updates")
    flash = st.session_state.pop("flash_error", None)
    if flash:
        st.error(str(flash))
    intro, board, rules, admin_tab = st.tabs(["Intro", "Board", "Rules", "Admin"])
    state = st.session_state["board"]
    with intro:
        page_intro(state)
    with board:
        page_board(state, admin=False)
    with rules:
        page_rules(state)
    with admin_tab:
        page_admin(store)


if __name__ == "__main__":
    main()
