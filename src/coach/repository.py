"""Resolution repository: JSON blobs in the record store.

Key layout:
    resolution:<id>            one resolution blob
    resolutions:all            index set of resolution ids
    resolutions:version        bumped on every create or delete
    preferences                single global preferences blob
    conversation:<id>          message log + session nudge count (TTL)
    nudge:<id>                 nudge record blob
    nudges:resolution:<rid>    index set of nudge ids per resolution
"""

from typing import Iterator, Optional

import structlog
from pydantic import ValidationError

from shared_types import ResolutionStatus

from .models import Conversation, NudgeRecord, Resolution, UserPreferences, utcnow
from .store import RecordStore, StoreConflictError, StoreError

logger = structlog.get_logger()

RESOLUTIONS_SET_KEY = "resolutions:all"
RESOLUTIONS_VERSION_KEY = "resolutions:version"
RESOLUTION_KEY_PREFIX = "resolution:"
PREFERENCES_KEY = "preferences"
CONVERSATION_KEY_PREFIX = "conversation:"
NUDGE_KEY_PREFIX = "nudge:"
NUDGES_BY_RESOLUTION_PREFIX = "nudges:resolution:"

DEFAULT_CONVERSATION_TTL_SECONDS = 86400  # 24 hours


class ResolutionSet:
    """Per-request working copy of the resolution collection.

    Tools mutate this set in place. The bytes read at load time are kept so
    the repository can commit only what changed, guarded by compare-and-set.
    ``index_version`` is the collection version seen at load time.
    """

    def __init__(
        self,
        resolutions: Optional[dict[str, Resolution]] = None,
        originals: Optional[dict[str, bytes]] = None,
        index_version: Optional[bytes] = None,
    ):
        self._items: dict[str, Resolution] = dict(resolutions or {})
        self._originals: dict[str, bytes] = dict(originals or {})
        self.index_version = index_version

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, resolution_id: str) -> bool:
        return resolution_id in self._items

    def __iter__(self) -> Iterator[Resolution]:
        return iter(list(self._items.values()))

    def get(self, resolution_id: Optional[str]) -> Optional[Resolution]:
        if not resolution_id:
            return None
        return self._items.get(resolution_id)

    def add(self, resolution: Resolution) -> None:
        self._items[resolution.id] = resolution

    def remove(self, resolution_id: str) -> Optional[Resolution]:
        return self._items.pop(resolution_id, None)

    def values(self) -> list[Resolution]:
        return list(self._items.values())

    def active(self) -> list[Resolution]:
        return [r for r in self._items.values() if r.status == ResolutionStatus.ACTIVE]

    def by_status(self, status: str = "all") -> list[Resolution]:
        if status in ("active", "completed"):
            return [r for r in self._items.values() if r.status == status]
        return self.values()

    def pending_changes(self) -> tuple[dict[str, bytes], list[str]]:
        """Return (id -> new bytes for added/changed records, removed ids)."""
        writes = {}
        for rid, resolution in self._items.items():
            encoded = resolution.to_json_bytes()
            if self._originals.get(rid) != encoded:
                writes[rid] = encoded
        removed = [rid for rid in self._originals if rid not in self._items]
        return writes, removed

    def original(self, resolution_id: str) -> Optional[bytes]:
        return self._originals.get(resolution_id)

    def mark_committed(self, index_version: Optional[bytes]) -> None:
        self.index_version = index_version
        self._originals = {rid: r.to_json_bytes() for rid, r in self._items.items()}


class ResolutionRepository:
    """Loads and saves resolutions, preferences, conversations and nudges."""

    def __init__(self, store: RecordStore, conversation_ttl_seconds: int = DEFAULT_CONVERSATION_TTL_SECONDS):
        self.store = store
        self.conversation_ttl_seconds = conversation_ttl_seconds

    # --- Resolutions ---

    def load_resolutions(self) -> ResolutionSet:
        """Load every indexed resolution. Unparseable blobs are skipped."""
        resolutions: dict[str, Resolution] = {}
        originals: dict[str, bytes] = {}

        # Read before the index so a concurrent create shows up as a stale version
        index_version = self.store.get(RESOLUTIONS_VERSION_KEY)

        for rid in self.store.members_of(RESOLUTIONS_SET_KEY):
            raw = self.store.get(_resolution_key(rid))
            if raw is None:
                continue
            try:
                resolution = Resolution.model_validate_json(raw)
            except ValidationError as e:
                logger.error("repository.parse_failed", resolution_id=rid, error=str(e))
                continue
            resolutions[resolution.id] = resolution
            originals[resolution.id] = raw

        logger.debug("repository.loaded", count=len(resolutions))
        return ResolutionSet(resolutions, originals, index_version)

    def commit(self, resolution_set: ResolutionSet) -> int:
        """Write back added, changed and removed records in one atomic step.

        Every touched record must still hold the bytes read at load time.
        Creates and deletes also require the collection version to be
        unchanged, which keeps the active limit intact across writers. On
        conflict nothing is written and StoreConflictError is raised.
        Returns the number of records written or removed.
        """
        writes, removed = resolution_set.pending_changes()
        if not writes and not removed:
            return 0

        touched = [*writes, *removed]
        added = [rid for rid in writes if resolution_set.original(rid) is None]
        expected = {_resolution_key(rid): resolution_set.original(rid) for rid in touched}
        values: dict[str, Optional[bytes]] = {_resolution_key(rid): encoded for rid, encoded in writes.items()}
        values.update({_resolution_key(rid): None for rid in removed})

        index_version = resolution_set.index_version
        if added or removed:
            expected[RESOLUTIONS_VERSION_KEY] = index_version
            index_version = _next_version(index_version)
            values[RESOLUTIONS_VERSION_KEY] = index_version

        if not self.store.compare_and_set_many(expected, values, RESOLUTIONS_SET_KEY, added, removed):
            stale = [rid for rid in touched if self.store.get(_resolution_key(rid)) != resolution_set.original(rid)]
            logger.warning("repository.commit_conflict", resolution_ids=stale)
            if stale:
                raise StoreConflictError(f"Resolutions modified concurrently: {', '.join(stale)}", keys=stale)
            raise StoreConflictError("Resolution list changed concurrently", keys=[RESOLUTIONS_SET_KEY])

        resolution_set.mark_committed(index_version)
        logger.info("repository.committed", written=len(writes), removed=len(removed))
        return len(touched)

    # --- Preferences ---

    def load_preferences(self) -> UserPreferences:
        raw = self.store.get(PREFERENCES_KEY)
        if raw is None:
            return UserPreferences()
        try:
            return UserPreferences.model_validate_json(raw)
        except ValidationError as e:
            logger.error("repository.preferences_parse_failed", error=str(e))
            return UserPreferences()

    def save_preferences(self, preferences: UserPreferences) -> None:
        preferences.updated_at = utcnow()
        self.store.set(PREFERENCES_KEY, preferences.to_json_bytes())
        logger.info("repository.preferences_saved")

    # --- Conversations ---

    def load_conversation(self, conversation_id: str) -> Conversation:
        raw = self.store.get(f"{CONVERSATION_KEY_PREFIX}{conversation_id}")
        if raw is None:
            return Conversation(id=conversation_id)
        try:
            return Conversation.model_validate_json(raw)
        except ValidationError as e:
            logger.error("repository.conversation_parse_failed", conversation_id=conversation_id, error=str(e))
            return Conversation(id=conversation_id)

    def save_conversation(self, conversation: Conversation) -> None:
        self.store.set(
            f"{CONVERSATION_KEY_PREFIX}{conversation.id}",
            conversation.to_json_bytes(),
            ttl_seconds=self.conversation_ttl_seconds,
        )
        logger.debug(
            "repository.conversation_saved",
            conversation_id=conversation.id,
            messages=len(conversation.messages),
        )

    # --- Nudges ---

    def save_nudge(self, nudge: NudgeRecord) -> None:
        self.store.set(f"{NUDGE_KEY_PREFIX}{nudge.id}", nudge.to_json_bytes())
        self.store.add_to_set(f"{NUDGES_BY_RESOLUTION_PREFIX}{nudge.resolution_id}", nudge.id)
        logger.info("repository.nudge_saved", nudge_id=nudge.id, resolution_id=nudge.resolution_id)

    def update_nudge(self, nudge: NudgeRecord) -> None:
        self.store.set(f"{NUDGE_KEY_PREFIX}{nudge.id}", nudge.to_json_bytes())
        logger.info("repository.nudge_updated", nudge_id=nudge.id, status=str(nudge.status))

    def load_nudges_for_resolution(self, resolution_id: str) -> list[NudgeRecord]:
        """Nudge records for one resolution, newest first."""
        nudges = []
        for nid in self.store.members_of(f"{NUDGES_BY_RESOLUTION_PREFIX}{resolution_id}"):
            raw = self.store.get(f"{NUDGE_KEY_PREFIX}{nid}")
            if raw is None:
                continue
            try:
                nudges.append(NudgeRecord.model_validate_json(raw))
            except ValidationError:
                logger.debug("repository.nudge_parse_failed", nudge_id=nid)
        return sorted(nudges, key=lambda n: n.created_at, reverse=True)

    # --- Health ---

    def health(self) -> dict:
        try:
            latency = self.store.ping()
            return {"connected": True, "latencyMs": round(latency, 2)}
        except StoreError as e:
            return {"connected": False, "latencyMs": None, "error": str(e)}


def _resolution_key(resolution_id: str) -> str:
    return f"{RESOLUTION_KEY_PREFIX}{resolution_id}"


def _next_version(version: Optional[bytes]) -> bytes:
    return str(int(version or 0) + 1).encode()
