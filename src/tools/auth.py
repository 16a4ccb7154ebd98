"""Passcode authentication tool."""

from __future__ import annotations

import logging
import unicodedata

from src.services.crm_store import CrmStore
from src.tools.base import ToolContext, ToolResult, failure
from src.tools.validation import VerifyPasscodeInput

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    """Case- and accent-insensitive form of a person's name."""
    decomposed = unicodedata.normalize("NFD", name.strip())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.casefold().split())


class AuthTools:
    def __init__(self, store: CrmStore) -> None:
        self._store = store

    async def verify_passcode(self, params: VerifyPasscodeInput, ctx: ToolContext) -> ToolResult:
        """Check an invited user's name + passcode pair.

        Passcodes are unique, so one lookup by passcode is enough; the name
        is then compared ignoring case and accents.  The agent (not this
        tool) records the identity on the session.
        """
        row = await self._store.find_user_by_passcode(params.passcode)
        if row is None or normalize_name(row["name"]) != normalize_name(params.name):
            logger.info("Passcode verification failed for %r", params.name)
            return failure("Invalid name or passcode.")
        user = {"id": row["id"], "name": row["name"]}
        return {"success": True, "user": user, "message": f"User verified: {row['name']}"}
