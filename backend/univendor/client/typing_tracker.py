import time
from typing import Callable, Dict, Set, Tuple

TYPING_TIMEOUT_SECONDS = 3.0


class TypingTracker:
    """
    Who is typing in which thread, as the UI should render it.

    A `typing` event with isTyping=true shows the indicator; it disappears on
    isTyping=false or once TYPING_TIMEOUT_SECONDS pass without a renewal,
    whatever the server believes.
    """

    def __init__(self, timeout: float = TYPING_TIMEOUT_SECONDS, clock: Callable[[], float] = time.monotonic):
        self._timeout = timeout
        self._clock = clock
        # (conversation_type, conversation_id, user_id) -> last renewal
        self._last_seen: Dict[Tuple[str, int, int], float] = {}

    def apply(self, data: dict):
        key = (
            data.get("conversationType") or "user_vendor",
            int(data["conversationId"]),
            int(data["userId"]),
        )
        if data.get("isTyping", True):
            self._last_seen[key] = self._clock()
        else:
            self._last_seen.pop(key, None)

    def is_typing(self, conversation_id: int, user_id: int, conversation_type: str = "user_vendor") -> bool:
        key = (conversation_type, conversation_id, user_id)
        seen = self._last_seen.get(key)
        if seen is None:
            return False
        if self._clock() - seen >= self._timeout:
            del self._last_seen[key]
            return False
        return True

    def typing_users(self, conversation_id: int, conversation_type: str = "user_vendor") -> Set[int]:
        return {
            user_id
            for (ctype, cid, user_id) in list(self._last_seen)
            if ctype == conversation_type and cid == conversation_id
            and self.is_typing(cid, user_id, ctype)
        }
