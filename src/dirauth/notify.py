"""
dirauth Notifications

Hand-off of classified login failures to the host application.

The authenticator only emits FailureDetail records; rendering and storage
belong to the host. SessionFlashWriter stores them the way a session-backed
flash component expects them.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, MutableMapping, Sequence

import attrs
import structlog

from dirauth.core.types import FailureDetail

logger = structlog.get_logger()

Notifier = Callable[[Sequence[FailureDetail]], None]

FLASH_PREFIX = "Flash."


@attrs.define
class SessionFlashWriter:
    """
    Writes failure messages into a session-like mapping.

    Messages are grouped by presentation key and stored under
    ``Flash.<key>`` as lists of {message, key, element, params} dicts,
    replacing any previous messages for that key.

    Example:
        session = {}
        auth = LDAPAuthenticator(config, notifier=SessionFlashWriter(session))
        auth.authenticate("jdoe", "wrong")
        session["Flash.flash"]  # [{"message": "Invalid username or password", ...}]
    """

    session: MutableMapping[str, Any]
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def __call__(self, failures: Sequence[FailureDetail]) -> None:
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for failure in failures:
            grouped.setdefault(failure.key, []).append(failure.to_flash())

        for key, messages in grouped.items():
            self.session[f"{FLASH_PREFIX}{key}"] = messages
            self._logger.debug("flash_messages_written", key=key, count=len(messages))
