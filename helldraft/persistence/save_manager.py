"""
Save Manager - Local save files, JSON export/import and run history.

The manager:
- Saves a serialized GameState keyed by run id, on demand and
  automatically when a run reaches VICTORY or GAMEOVER
- Exports/imports a versioned JSON envelope around the state
- Keeps a capped history of finished runs (newest first)

Design decisions:
- Simple file-based storage under save_dir, or in memory when no
  directory is configured
- Import is the only place a bad save raises (ValueError)
"""

from __future__ import annotations
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any
import json
import logging
import time

from ..engine_core.state import GamePhase, GameState

logger = logging.getLogger(__name__)

SAVE_FORMAT_VERSION = 1
DEFAULT_HISTORY_LIMIT = 20

REQUIRED_STATE_KEYS = ("run_id", "phase", "config", "players")


@dataclass
class RunHistoryEntry:
    """Summary of one finished run."""
    run_id: str
    outcome: str
    difficulty_reached: int
    duration_seconds: float
    player_count: int
    finished_at: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunHistoryEntry:
        return cls(
            run_id=data["run_id"],
            outcome=data["outcome"],
            difficulty_reached=int(data["difficulty_reached"]),
            duration_seconds=float(data["duration_seconds"]),
            player_count=int(data["player_count"]),
            finished_at=float(data["finished_at"]),
        )


class SaveManager:
    """
    Save slots keyed by run id.

    Usage:
        saves = SaveManager(save_dir="~/.helldraft/saves")
        loop.subscribe(saves.on_state)     # auto-save terminal phases

        text = saves.export_save(loop.state)
        state = saves.import_save(text)
    """

    def __init__(self, save_dir: str | Path | None = None, history_limit: int = DEFAULT_HISTORY_LIMIT):
        self.save_dir = Path(save_dir).expanduser() if save_dir else None
        self.history_limit = history_limit
        self._memory: dict[str, dict[str, Any]] = {}
        self._history: list[RunHistoryEntry] = []
        self._started_at: dict[str, float] = {}
        self._recorded: set[str] = set()

        if self.save_dir is not None:
            self.save_dir.mkdir(parents=True, exist_ok=True)
            self._history = self._load_history()

    # =========================================================================
    # Save slots
    # =========================================================================

    def save(self, state: GameState) -> str:
        data = state.to_dict()
        if self.save_dir is None:
            self._memory[state.run_id] = data
        else:
            self._save_path(state.run_id).write_text(json.dumps(data))
        logger.info("Saved run %s (%s)", state.run_id, state.phase.value)
        return state.run_id

    def load(self, run_id: str) -> GameState | None:
        if self.save_dir is None:
            data = self._memory.get(run_id)
        else:
            path = self._save_path(run_id)
            if not path.exists():
                return None
            try:
                data = json.loads(path.read_text())
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Unreadable save %s: %s", path, e)
                return None
        if data is None or not self.validate_save(data):
            return None
        return GameState.from_dict(data)

    def delete(self, run_id: str) -> bool:
        if self.save_dir is None:
            return self._memory.pop(run_id, None) is not None
        path = self._save_path(run_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def list_saves(self) -> list[str]:
        if self.save_dir is None:
            return sorted(self._memory)
        return sorted(p.stem[len("run-"):] for p in self.save_dir.glob("run-*.json"))

    def _save_path(self, run_id: str) -> Path:
        safe = "".join(c for c in run_id if c.isalnum() or c in "-_")
        return self.save_dir / f"run-{safe}.json"

    # =========================================================================
    # Export / import
    # =========================================================================

    def export_save(self, state: GameState) -> str:
        return json.dumps({
            "format_version": SAVE_FORMAT_VERSION,
            "exported_at": time.time(),
            "state": state.to_dict(),
        })

    def import_save(self, text: str) -> GameState:
        """Parse an exported save. Raises ValueError for anything invalid."""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Save is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Save must be a JSON object")
        version = data.get("format_version")
        if version != SAVE_FORMAT_VERSION:
            raise ValueError(f"Unsupported save format {version!r}")
        state = data.get("state")
        if not self.validate_save(state):
            raise ValueError("Save does not contain a valid game state")
        try:
            return GameState.from_dict(state)
        except (AttributeError, KeyError, TypeError) as e:
            raise ValueError(f"Corrupt game state: {e}") from e

    def validate_save(self, data: Any) -> bool:
        """Cheap structural check before deserializing."""
        if not isinstance(data, dict):
            return False
        if any(key not in data for key in REQUIRED_STATE_KEYS):
            return False
        try:
            GamePhase(data["phase"])
        except ValueError:
            return False
        players = data["players"]
        if not isinstance(players, list) or len(players) > 4:
            return False
        return all(
            isinstance(p, dict) and p.get("slot") == i
            for i, p in enumerate(players)
        )

    # =========================================================================
    # Run history
    # =========================================================================

    def on_state(self, state: GameState) -> None:
        """Loop subscriber: track run start and auto-save finished runs."""
        if state.phase == GamePhase.LOBBY or not state.players:
            return
        self._started_at.setdefault(state.run_id, time.time())
        if state.phase.is_terminal and state.run_id not in self._recorded:
            self.save(state)
            self.record_run(state)

    def record_run(self, state: GameState, started_at: float | None = None) -> RunHistoryEntry:
        now = time.time()
        started = started_at or self._started_at.get(state.run_id, now)
        entry = RunHistoryEntry(
            run_id=state.run_id,
            outcome="victory" if state.phase == GamePhase.VICTORY else "gameover",
            difficulty_reached=state.current_diff,
            duration_seconds=max(0.0, now - started),
            player_count=state.num_players,
            finished_at=now,
        )
        self._recorded.add(state.run_id)
        self._history.insert(0, entry)
        del self._history[self.history_limit:]
        self._save_history()
        return entry

    def history(self) -> list[RunHistoryEntry]:
        return list(self._history)

    def _history_path(self) -> Path:
        return self.save_dir / "history.json"

    def _load_history(self) -> list[RunHistoryEntry]:
        path = self._history_path()
        if not path.exists():
            return []
        try:
            entries = json.loads(path.read_text())
            return [RunHistoryEntry.from_dict(e) for e in entries][: self.history_limit]
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring unreadable run history: %s", e)
            return []

    def _save_history(self) -> None:
        if self.save_dir is None:
            return
        self._history_path().write_text(json.dumps([e.to_dict() for e in self._history]))
