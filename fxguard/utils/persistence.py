"""
Risk state persistence.

The engine's daily realised loss, martingale multiplier and favourable
excursions must survive a restart of the polling loop, otherwise a
restart in the middle of a losing day would hand out a fresh budget.
The state is a plain dictionary stored as JSON.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


def load_state(path: str) -> Optional[Dict[str, Any]]:
    """Read the state saved by `save_state()`, or `None` on a first run."""
    file_path = Path(path)
    if not file_path.exists():
        return None
    with file_path.open("r", encoding="utf-8") as fh:
        state = json.load(fh)
    logger.debug("Loaded state from %s", file_path)
    return state


def save_state(path: str, state: Dict[str, Any]) -> None:
    """Replace the state file with `state`.

    The JSON is written to a sibling ``.tmp`` file and moved over the
    destination, so readers only ever see a complete file.
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = file_path.with_name(file_path.name + ".tmp")
    tmp_path.write_text(json.dumps(state, indent=2, sort_keys=True), encoding="utf-8")
    os.replace(tmp_path, file_path)
