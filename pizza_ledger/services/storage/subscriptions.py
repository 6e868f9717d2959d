"""
Change notification fan-out shared by the storage backends.

Observers (UI layers, tests) register plain callables. Each one receives its
own copy of the data so it can't mutate what the backend holds.
"""

from typing import Optional

import structlog

from pizza_ledger.models.ledger import Group
from pizza_ledger.services.storage.interface import (
    GroupCallback,
    GroupListCallback,
    Unsubscribe,
)

logger = structlog.get_logger(__name__)


class ChangeNotifier:
    """Registry of group and group-list observers."""

    def __init__(self):
        self._group_watchers: dict[str, dict[int, GroupCallback]] = {}
        self._list_watchers: dict[int, GroupListCallback] = {}
        self._next_token = 0

    def _token(self) -> int:
        self._next_token += 1
        return self._next_token

    def watch_group(self, group_id: str, on_change: GroupCallback) -> Unsubscribe:
        token = self._token()
        self._group_watchers.setdefault(group_id, {})[token] = on_change

        def unsubscribe() -> None:
            watchers = self._group_watchers.get(group_id)
            if watchers is not None:
                watchers.pop(token, None)
                if not watchers:
                    self._group_watchers.pop(group_id, None)

        return unsubscribe

    def watch_list(self, on_change: GroupListCallback) -> Unsubscribe:
        token = self._token()
        self._list_watchers[token] = on_change

        def unsubscribe() -> None:
            self._list_watchers.pop(token, None)

        return unsubscribe

    @property
    def has_list_watchers(self) -> bool:
        return bool(self._list_watchers)

    def notify(
        self,
        group_id: str,
        group: Optional[Group],
        all_groups: Optional[list[Group]] = None,
    ) -> None:
        """
        Deliver a change to every interested observer.

        A failing observer is logged and skipped; the write that triggered
        the notification has already happened and is not undone.
        """
        for callback in list(self._group_watchers.get(group_id, {}).values()):
            try:
                callback(group.model_copy(deep=True) if group else None)
            except Exception:
                logger.exception("group_subscriber_failed", group_id=group_id)

        if all_groups is None:
            return
        for callback in list(self._list_watchers.values()):
            try:
                callback([g.model_copy(deep=True) for g in all_groups])
            except Exception:
                logger.exception("group_list_subscriber_failed")
