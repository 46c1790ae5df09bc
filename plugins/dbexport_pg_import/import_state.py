"""
Import State Module

Tracks the progress of one import run as a strict state machine:

    PARSED -> LOADED -> SCHEMA_CREATED -> DATA_LOADED -> INDEXES_BUILT

Any state may move to FAILED; nothing moves out of FAILED. A failed run is
never resumed: the operator fixes the cause and re-imports (with
drop_existing when the schema was partially created).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import logging

from dbexport_pg_import.errors import PhaseTransitionError

logger = logging.getLogger(__name__)


class ImportPhase(str, Enum):
    PARSED = 'parsed'
    LOADED = 'loaded'
    SCHEMA_CREATED = 'schema_created'
    DATA_LOADED = 'data_loaded'
    INDEXES_BUILT = 'indexes_built'
    FAILED = 'failed'


_TRANSITIONS = {
    None: ImportPhase.PARSED,
    ImportPhase.PARSED: ImportPhase.LOADED,
    ImportPhase.LOADED: ImportPhase.SCHEMA_CREATED,
    ImportPhase.SCHEMA_CREATED: ImportPhase.DATA_LOADED,
    ImportPhase.DATA_LOADED: ImportPhase.INDEXES_BUILT,
}


@dataclass
class ImportState:
    """Current phase of an import run plus failure details."""

    phase: Optional[ImportPhase] = None
    failed_step: Optional[str] = None
    failed_object: Optional[str] = None
    error: Optional[str] = None
    history: List[Tuple[ImportPhase, str]] = field(default_factory=list)

    @property
    def is_failed(self) -> bool:
        return self.phase is ImportPhase.FAILED

    @property
    def is_complete(self) -> bool:
        return self.phase is ImportPhase.INDEXES_BUILT

    def advance(self, phase: ImportPhase) -> None:
        """
        Move to the next phase.

        Raises:
            PhaseTransitionError: If the run has failed or phase is not the
                direct successor of the current phase
        """
        if self.is_failed:
            raise PhaseTransitionError(f"Import has failed during {self.failed_step}; cannot move to {phase.value}")
        expected = _TRANSITIONS.get(self.phase)
        if phase is not expected:
            current = self.phase.value if self.phase else 'start'
            raise PhaseTransitionError(f"Cannot move from {current} to {phase.value}")

        self.phase = phase
        self.history.append((phase, datetime.now(timezone.utc).isoformat()))
        logger.info(f"Import phase: {phase.value}")

    def fail(self, step: str, error: Any, object_name: Optional[str] = None) -> None:
        """Record a terminal failure."""
        if self.is_failed:
            raise PhaseTransitionError(f"Import already failed during {self.failed_step}")

        self.phase = ImportPhase.FAILED
        self.failed_step = step
        self.failed_object = object_name
        self.error = str(error)
        self.history.append((ImportPhase.FAILED, datetime.now(timezone.utc).isoformat()))
        logger.error(f"✗ Import failed during {step}{f' ({object_name})' if object_name else ''}: {error}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'phase': self.phase.value if self.phase else None,
            'failed_step': self.failed_step,
            'failed_object': self.failed_object,
            'error': self.error,
            'history': [(phase.value, at) for phase, at in self.history],
        }
