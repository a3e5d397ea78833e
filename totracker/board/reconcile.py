"""
Optimistic mutation protocol shared by the boards.

    move()    drag-and-drop: no-op when nothing changes, optimistic apply,
              exact rollback of the moved fields on failure, merge of the
              server's story on success
    move_many()
              same as move() for a drag that renumbers several stories
              locally while sending only the dragged one
    edit()    inline field edit: optimistic apply, merge on success, no
              rollback on failure (the local value stays)
    create()  create, then merge the server's story without replacing an
              existing copy
    delete()  delete, then drop the story and its subtree

Any failure sets ``store.error``; the next mutation clears it. There is no
automatic retry and no cancellation. Completions may arrive out of order, so
a late success can overwrite a newer local value.
"""

import logging
import threading

from totracker.board.dispatch import BackgroundDispatcher
from totracker.board.state import StoryState, merge_story, remove_story, update_story

logger = logging.getLogger(__name__)


class StoryStore:
    """Current StoryState plus the view's error flag, guarded by one lock."""

    def __init__(self, state=None):
        self._state = state if state is not None else StoryState()
        self.lock = threading.RLock()
        self.error = None

    @property
    def state(self) -> StoryState:
        with self.lock:
            return self._state

    @property
    def has_error(self) -> bool:
        return self.error is not None

    def replace(self, state: StoryState) -> None:
        with self.lock:
            self._state = state


class StoryReconciler:
    def __init__(self, store: StoryStore, gateway, dispatcher=None):
        self.store = store
        self.gateway = gateway
        self.dispatcher = dispatcher or BackgroundDispatcher()

    # ── Drag-and-drop ────────────────────────────────────────────────────

    def move(self, story_id: str, local_patch: dict, request_patch: dict | None = None) -> bool:
        """Apply a drag result. Returns False when it was a no-op."""
        request_patch = local_patch if request_patch is None else request_patch
        return self.move_many(story_id, {story_id: local_patch}, request_patch)

    def move_many(self, story_id: str, local_patches: dict, request_patch: dict) -> bool:
        """Apply a drag that changes several stories locally.

        ``local_patches`` maps story id → patch; only ``story_id`` is sent to
        the server. Fields that already hold the patched value are skipped,
        and on failure exactly the changed fields are restored.
        """
        store = self.store
        with store.lock:
            state = store.state
            if story_id not in state:
                return False
            changes: dict[str, dict] = {}
            previous: dict[str, dict] = {}
            for sid, patch in local_patches.items():
                story = state.get(sid)
                if story is None:
                    continue
                changed = {k: v for k, v in patch.items() if story.get(k) != v}
                if changed:
                    changes[sid] = changed
                    previous[sid] = {k: story.get(k) for k in changed}
            if not changes:
                return False
            for sid, patch in changes.items():
                state = update_story(state, sid, patch)
            store.replace(state)
            store.error = None

        logger.debug("Move %s: %s → %s", story_id, previous, changes)
        self.dispatcher.submit(
            lambda: self.gateway.patch_story(story_id, request_patch),
            on_success=self._merge,
            on_error=lambda exc: self._rollback(previous, exc),
        )
        return True

    def _rollback(self, previous: dict, exc: Exception) -> None:
        with self.store.lock:
            state = self.store.state
            for sid, fields in previous.items():
                state = update_story(state, sid, fields)
            self.store.replace(state)
            self.store.error = exc
        logger.warning("Move failed, rolled back %s: %s", sorted(previous), exc)

    # ── Inline edits ─────────────────────────────────────────────────────

    def edit(self, story_id: str, local_patch: dict, request_patch: dict | None = None) -> bool:
        """Apply an inline edit. The local value is kept if the request fails."""
        request_patch = local_patch if request_patch is None else request_patch
        with self.store.lock:
            if story_id not in self.store.state:
                return False
            self.store.replace(update_story(self.store.state, story_id, local_patch))
            self.store.error = None

        self.dispatcher.submit(
            lambda: self.gateway.patch_story(story_id, request_patch),
            on_success=self._merge,
            on_error=self._flag,
        )
        return True

    # ── Create / delete ──────────────────────────────────────────────────

    def create(self, fields: dict) -> None:
        with self.store.lock:
            self.store.error = None
        self.dispatcher.submit(
            lambda: self.gateway.create_story(fields),
            on_success=lambda story: self._merge(story, replace_existing=False),
            on_error=self._flag,
        )

    def delete(self, story_id: str) -> None:
        with self.store.lock:
            self.store.error = None

        def _removed(_result):
            with self.store.lock:
                self.store.replace(remove_story(self.store.state, story_id))
            logger.debug("Story %s removed", story_id)

        self.dispatcher.submit(
            lambda: self.gateway.delete_story(story_id),
            on_success=_removed,
            on_error=self._flag,
        )

    # ── Completion callbacks ─────────────────────────────────────────────

    def _merge(self, server_story: dict, replace_existing: bool = True) -> None:
        with self.store.lock:
            self.store.replace(merge_story(self.store.state, server_story, replace_existing))
        logger.debug("Merged server copy of %s", server_story.get("id"))

    def _flag(self, exc: Exception) -> None:
        with self.store.lock:
            self.store.error = exc
        logger.warning("Story mutation failed: %s", exc)
