"""
studybank.services.notifier — Notification Capability
======================================================

What the voice scheduler needs from the chat platform, and nothing more:
send, edit and delete a message, and disconnect a member from voice.
:class:`DiscordNotifier` implements it on top of discord.py; tests pass
an ``AsyncMock``.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import discord

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send(self, channel: Any, text: str) -> Any: ...

    async def edit(self, message: Any, text: str) -> None: ...

    async def delete(self, message: Any) -> None: ...

    async def disconnect_member(self, member: Any, reason: str) -> None: ...


class DiscordNotifier:
    """Voice channels double as text channels, so notices go to the room itself."""

    async def send(self, channel: discord.abc.Messageable, text: str) -> discord.Message:
        return await channel.send(text)

    async def edit(self, message: discord.Message, text: str) -> None:
        await message.edit(content=text)

    async def delete(self, message: discord.Message) -> None:
        try:
            await message.delete()
        except discord.NotFound:
            logger.debug("Message %s already deleted", message.id)

    async def disconnect_member(self, member: discord.Member, reason: str) -> None:
        await member.move_to(None, reason=reason)
