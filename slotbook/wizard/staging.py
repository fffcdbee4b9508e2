"""
Staging area for the one in-flight booking draft.

The draft lives under a single well-known key and every write replaces the
previous one. A separate boolean key marks a draft that should be offered for
resume after the visitor comes back from the identity flow; reading that flag
never touches the draft body.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from slotbook.core.config import settings
from slotbook.core.exceptions import CorruptDraft
from slotbook.wizard.draft import StagedBookingDraft

logger = logging.getLogger(__name__)

DRAFT_KEY = "temp_appointment"
PENDING_KEY = "pending_appointment"
PENDING_VALUE = "true"


class StagedBookingStore(Protocol):
    def write(self, draft: StagedBookingDraft, pending: bool = False) -> None:
        ...

    def read(self) -> StagedBookingDraft | None:
        ...

    def clear(self) -> None:
        ...

    def has_pending(self) -> bool:
        ...

    def clear_pending(self) -> None:
        ...


class KeyValueStagedBookingStore:
    """
    Draft staging on top of a raw string key/value backend.

    Subclasses provide _get, _set and _delete. Without an explicit
    max_age_minutes the DRAFT_MAX_AGE_MINUTES setting applies.
    """

    def __init__(self, max_age_minutes: int | None = None):
        if max_age_minutes is None:
            max_age_minutes = settings.DRAFT_MAX_AGE_MINUTES
        self.max_age_minutes = max_age_minutes

    def _get(self, key: str) -> str | None:
        raise NotImplementedError

    def _set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def _delete(self, key: str) -> None:
        raise NotImplementedError

    def write(self, draft: StagedBookingDraft, pending: bool = False) -> None:
        """Replace the staged draft. The pending flag is only raised when asked."""
        self._set(DRAFT_KEY, draft.encode())
        if pending:
            self._set(PENDING_KEY, PENDING_VALUE)
        logger.debug(f"Staged draft for {draft.professional_code} (pending={pending})")

    def read(self) -> StagedBookingDraft | None:
        """
        Load the staged draft.

        Returns:
            The draft, or None when nothing is staged

        Raises:
            CorruptDraft: the payload cannot be decoded or has expired
        """
        try:
            payload = self._get(DRAFT_KEY)
        except UnicodeDecodeError as e:
            raise CorruptDraft(f"Draft is not valid UTF-8: {e}") from e
        if payload is None:
            return None

        draft = StagedBookingDraft.decode(payload)
        if draft.is_expired(self.max_age_minutes):
            raise CorruptDraft(f"Draft older than {self.max_age_minutes} minutes")
        return draft

    def clear(self) -> None:
        self._delete(DRAFT_KEY)
        self._delete(PENDING_KEY)

    def has_pending(self) -> bool:
        try:
            return self._get(PENDING_KEY) == PENDING_VALUE
        except UnicodeDecodeError:
            return False

    def clear_pending(self) -> None:
        self._delete(PENDING_KEY)


class MemoryStagedBookingStore(KeyValueStagedBookingStore):
    """Keeps serialised values in a dict. Shares nothing across processes."""

    def __init__(self, max_age_minutes: int | None = None):
        super().__init__(max_age_minutes)
        self.values: dict[str, str] = {}

    def _get(self, key: str) -> str | None:
        return self.values.get(key)

    def _set(self, key: str, value: str) -> None:
        self.values[key] = value

    def _delete(self, key: str) -> None:
        self.values.pop(key, None)


class FileStagedBookingStore(KeyValueStagedBookingStore):
    """
    One file per key inside a profile directory (STAGING_DIR by default).

    Writes go to a temporary file that is then renamed over the target, so a
    reader sees either the previous draft or the new one.
    """

    def __init__(self, directory: str | os.PathLike | None = None, max_age_minutes: int | None = None):
        super().__init__(max_age_minutes)
        self.directory = Path(directory or settings.STAGING_DIR).expanduser()

    def _path(self, key: str) -> Path:
        return self.directory / key

    def _get(self, key: str) -> str | None:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path(key))
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
