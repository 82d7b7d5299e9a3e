"""
studybank.services.audio_service — Voice Cue Playback
======================================================

Plays a short audio file into a voice room when a study milestone is
reached (the 3h30m reminder and the 4h reminder).

Rules:
- The same cue in the same room plays at most once per cooldown
  (5 minutes by default); repeats inside the window are skipped.
- Only one connection per room.  If we are already playing there, skip.
  discord.py allows one voice client per guild, so a busy guild skips too.
- The cooldown starts once the connection is up; a failed connect
  leaves the cue free to retry.
- Playback runs in a background task so the caller never waits on it.
  The connection is released when the clip ends, or after a hard
  ceiling (30 s by default) if it never reports completion.

Needs the ``discord.py[voice]`` extra and ``ffmpeg`` on the PATH.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

import discord

logger = logging.getLogger(__name__)


class CuePlayer(Protocol):
    async def play_cue(self, channel: Any, cue_id: str) -> bool: ...


class VoiceCuePlayer:
    """discord.py implementation of :class:`CuePlayer`.

    Parameters
    ----------
    audio_dir:
        Directory holding the cue files; *cue_id* is a file name in it.
    cooldown_seconds:
        Minimum gap between two plays of one cue in one room.
    max_seconds:
        Failsafe: disconnect after this long even if playback hasn't ended.
    clock:
        Monotonic clock, injectable for tests.
    source_factory:
        Builds the audio source from a file path.
    """

    def __init__(
        self,
        audio_dir: str | Path,
        *,
        cooldown_seconds: float = 300,
        max_seconds: float = 30,
        clock: Callable[[], float] = time.monotonic,
        source_factory: Callable[[str], discord.AudioSource] = discord.FFmpegPCMAudio,
    ) -> None:
        self.audio_dir = Path(audio_dir)
        self.cooldown_seconds = cooldown_seconds
        self.max_seconds = max_seconds
        self._clock = clock
        self._source_factory = source_factory
        self._last_played: dict[tuple[int, str], float] = {}
        self._active_channels: set[int] = set()
        self._tasks: set[asyncio.Task] = set()

    @property
    def active_connections(self) -> int:
        return len(self._active_channels)

    def in_cooldown(self, channel_id: int, cue_id: str) -> bool:
        last = self._last_played.get((channel_id, cue_id))
        return last is not None and self._clock() - last < self.cooldown_seconds

    async def play_cue(self, channel: Any, cue_id: str) -> bool:
        """Start playing *cue_id* in *channel*.  Returns ``False`` if skipped."""
        if self.in_cooldown(channel.id, cue_id):
            logger.debug("Cue %s in cooldown for channel %s", cue_id, channel.id)
            return False
        if channel.id in self._active_channels:
            logger.debug("Already playing in channel %s, skipping %s", channel.id, cue_id)
            return False

        guild_client = getattr(getattr(channel, "guild", None), "voice_client", None)
        if guild_client is not None and guild_client.is_connected():
            logger.debug("Guild voice connection busy, skipping %s in %s", cue_id, channel.id)
            return False

        path = self.audio_dir / cue_id
        if not path.is_file():
            logger.warning("Audio file not found: %s", path)
            return False

        self._active_channels.add(channel.id)
        task = asyncio.create_task(self._play(channel, cue_id, path))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _play(self, channel: Any, cue_id: str, path: Path) -> None:
        voice_client = None
        try:
            voice_client = await channel.connect(timeout=10, reconnect=False)
            self._last_played[(channel.id, cue_id)] = self._clock()
            finished = asyncio.Event()
            loop = asyncio.get_running_loop()

            def _after(error: Exception | None) -> None:
                if error is not None:
                    logger.warning("Playback error in channel %s: %s", channel.id, error)
                loop.call_soon_threadsafe(finished.set)

            voice_client.play(self._source_factory(str(path)), after=_after)
            logger.info("Playing %s in %s", path.name, getattr(channel, "name", channel.id))
            try:
                await asyncio.wait_for(finished.wait(), timeout=self.max_seconds)
            except TimeoutError:
                logger.info("Cue %s hit the %ss ceiling, forcing cleanup", path.name, self.max_seconds)
        except Exception:
            logger.exception("Failed to play %s in channel %s", path.name, channel.id)
        finally:
            if voice_client is not None:
                try:
                    await voice_client.disconnect(force=True)
                except Exception:
                    logger.warning("Could not disconnect from channel %s", channel.id)
            self._active_channels.discard(channel.id)

    async def close(self) -> None:
        """Cancel in-flight playback (their cleanup still disconnects)."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
