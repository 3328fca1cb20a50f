"""JSON file store for a single resource's state."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

import structlog
from pydantic import ValidationError

from servicebus_authrule.resources.state import ResourceState

logger = structlog.get_logger()

STATE_VERSION = 1


class StateFileStore:
    """Reads and writes ``ResourceState`` as a versioned JSON document.

    The file holds secrets in clear text and is created with mode 0600.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> ResourceState:
        """Return the stored state, or an empty state if the file is absent."""
        if not self._path.exists():
            return ResourceState()
        try:
            document = json.loads(self._path.read_text())
        except json.JSONDecodeError as exc:
            msg = f"State file {self._path} is not valid JSON: {exc}"
            raise ValueError(msg) from exc
        if not isinstance(document, dict) or document.get("version") != STATE_VERSION:
            msg = f"State file {self._path} has an unsupported format"
            raise ValueError(msg)
        try:
            return ResourceState.model_validate(document.get("resource") or {})
        except ValidationError as exc:
            msg = f"Invalid resource in state file {self._path}:\n{exc}"
            raise ValueError(msg) from exc

    def save(self, state: ResourceState) -> None:
        """Atomically replace the state file with *state*."""
        document = {"version": STATE_VERSION, "resource": state.to_state_dict()}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".state-")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(document, f, indent=2, sort_keys=True)
                f.write("\n")
            os.chmod(tmp, 0o600)
            os.replace(tmp, self._path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug("state.saved", path=str(self._path), resource_id=state.id)
