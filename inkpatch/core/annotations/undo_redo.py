"""
Snapshot history for annotations.
"""
import copy
from typing import Callable, List, Optional

from .models import Annotation


class History:
    """
    Linear list of annotation snapshots with a cursor.

    snapshots[cursor] is always the live set. Pushing a new snapshot drops
    everything after the cursor, so redo is lost once a new mutation happens.
    """

    def __init__(self, max_size: Optional[int] = None):
        """
        Initialize the history with a single empty snapshot.

        Args:
            max_size: Maximum number of snapshots to keep; None keeps all
        """
        if max_size is not None and max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self.snapshots: List[List[Annotation]] = [[]]
        self.cursor: int = 0
        self.max_size = max_size

    @property
    def current(self) -> List[Annotation]:
        return self.snapshots[self.cursor]

    def push(self, annotations: List[Annotation]) -> None:
        """
        Record a new live set.

        Args:
            annotations: The annotation list after the mutation
        """
        state = [copy.deepcopy(ann) for ann in annotations]

        del self.snapshots[self.cursor + 1:]
        self.snapshots.append(state)
        self.cursor = len(self.snapshots) - 1

        if self.max_size is not None and len(self.snapshots) > self.max_size:
            overflow = len(self.snapshots) - self.max_size
            del self.snapshots[:overflow]
            self.cursor -= overflow

    def can_undo(self) -> bool:
        return self.cursor > 0

    def can_redo(self) -> bool:
        return self.cursor < len(self.snapshots) - 1

    def undo(self) -> bool:
        """Step back one snapshot. Returns False at the oldest snapshot."""
        if not self.can_undo():
            return False
        self.cursor -= 1
        return True

    def redo(self) -> bool:
        """Step forward one snapshot. Returns False at the newest snapshot."""
        if not self.can_redo():
            return False
        self.cursor += 1
        return True

    def reset(self, annotations: Optional[List[Annotation]] = None) -> None:
        """Forget all history and start from the given live set."""
        self.snapshots = [[copy.deepcopy(ann) for ann in annotations or []]]
        self.cursor = 0

    def purge(self, predicate: Callable[[Annotation], bool]) -> int:
        """
        Remove matching annotations from every snapshot.

        Used when a page is deleted, so that no snapshot can bring back an
        annotation whose page no longer exists.

        Returns:
            Number of annotations removed across all snapshots
        """
        removed = 0
        for index, snapshot in enumerate(self.snapshots):
            kept = [ann for ann in snapshot if not predicate(ann)]
            removed += len(snapshot) - len(kept)
            self.snapshots[index] = kept
        return removed

    def __len__(self) -> int:
        return len(self.snapshots)
