"""
tests/test_audio_service.py — Voice Cue Player Tests
=====================================================

Cooldown per (room, cue), one connection per room, missing files and
the playback ceiling.  No real voice connection or ffmpeg is involved.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from studybank.services.audio_service import VoiceCuePlayer


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _make_channel(channel_id: int = 10, *, finishes: bool = True) -> SimpleNamespace:
    """A voice channel whose connection finishes playback at once (or never)."""
    voice_client = MagicMock()
    voice_client.disconnect = AsyncMock()

    def _play(source, after):
        if finishes:
            after(None)

    voice_client.play = MagicMock(side_effect=_play)
    return SimpleNamespace(
        id=channel_id,
        name=f"Room {channel_id}",
        connect=AsyncMock(return_value=voice_client),
        voice_client=voice_client,
    )


@pytest.fixture
def audio_dir(tmp_path):
    (tmp_path / "30.mp3").write_bytes(b"\x00")
    (tmp_path / "4.mp3").write_bytes(b"\x00")
    return tmp_path


def _make_player(audio_dir, clock=None, **kwargs) -> VoiceCuePlayer:
    return VoiceCuePlayer(
        audio_dir,
        clock=clock or FakeClock(),
        source_factory=MagicMock(name="source_factory"),
        **kwargs,
    )


async def _drain(player: VoiceCuePlayer) -> None:
    for _ in range(50):
        if not player.active_connections:
            return
        await asyncio.sleep(0)


class TestVoiceCuePlayer:
    def test_plays_and_disconnects(self, audio_dir):
        async def _inner():
            player = _make_player(audio_dir)
            channel = _make_channel()
            assert await player.play_cue(channel, "30.mp3")
            await _drain(player)

            channel.connect.assert_awaited_once()
            channel.voice_client.play.assert_called_once()
            channel.voice_client.disconnect.assert_awaited_once_with(force=True)
            assert player.active_connections == 0

        run_async(_inner())

    def test_cooldown_per_channel_and_cue(self, audio_dir):
        async def _inner():
            clock = FakeClock()
            player = _make_player(audio_dir, clock, cooldown_seconds=300)
            channel = _make_channel()

            assert await player.play_cue(channel, "30.mp3")
            await _drain(player)
            assert not await player.play_cue(channel, "30.mp3")
            assert player.in_cooldown(10, "30.mp3")

            # A different cue, or a different room, is not throttled.
            assert await player.play_cue(channel, "4.mp3")
            await _drain(player)
            assert await player.play_cue(_make_channel(11), "30.mp3")
            await _drain(player)

            clock.now += 301
            assert await player.play_cue(channel, "30.mp3")
            await _drain(player)

        run_async(_inner())

    def test_one_connection_per_channel(self, audio_dir):
        async def _inner():
            player = _make_player(audio_dir)
            channel = _make_channel(finishes=False)

            assert await player.play_cue(channel, "30.mp3")
            await asyncio.sleep(0)
            assert player.active_connections == 1
            assert not await player.play_cue(channel, "4.mp3")

            await player.close()
            channel.voice_client.disconnect.assert_awaited_once_with(force=True)
            assert player.active_connections == 0

        run_async(_inner())

    def test_missing_file_skipped(self, audio_dir):
        async def _inner():
            player = _make_player(audio_dir)
            channel = _make_channel()
            assert not await player.play_cue(channel, "missing.mp3")
            channel.connect.assert_not_awaited()
            assert not player.in_cooldown(10, "missing.mp3")

        run_async(_inner())

    def test_ceiling_forces_disconnect(self, audio_dir):
        async def _inner():
            player = _make_player(audio_dir, max_seconds=0.01)
            channel = _make_channel(finishes=False)
            assert await player.play_cue(channel, "30.mp3")
            await asyncio.sleep(0.1)

            channel.voice_client.disconnect.assert_awaited_once_with(force=True)
            assert player.active_connections == 0

        run_async(_inner())

    def test_connect_failure_releases_channel(self, audio_dir):
        async def _inner():
            player = _make_player(audio_dir)
            channel = _make_channel()
            channel.connect.side_effect = RuntimeError("no permission")
            assert await player.play_cue(channel, "30.mp3")
            await _drain(player)
            assert player.active_connections == 0

        run_async(_inner())

    def test_failed_connect_does_not_start_cooldown(self, audio_dir):
        async def _inner():
            player = _make_player(audio_dir)
            channel = _make_channel()
            channel.connect.side_effect = RuntimeError("timed out")
            assert await player.play_cue(channel, "30.mp3")
            await _drain(player)

            assert not player.in_cooldown(10, "30.mp3")
            channel.connect.side_effect = None
            assert await player.play_cue(channel, "30.mp3")
            await _drain(player)
            assert player.in_cooldown(10, "30.mp3")

        run_async(_inner())

    def test_busy_guild_connection_skips_other_rooms(self, audio_dir):
        async def _inner():
            player = _make_player(audio_dir)
            busy = MagicMock()
            busy.is_connected.return_value = True
            channel = _make_channel(11)
            channel.guild = SimpleNamespace(voice_client=busy)

            assert not await player.play_cue(channel, "30.mp3")
            channel.connect.assert_not_awaited()
            assert not player.in_cooldown(11, "30.mp3")

            busy.is_connected.return_value = False
            assert await player.play_cue(channel, "30.mp3")
            await _drain(player)
            channel.connect.assert_awaited_once()

        run_async(_inner())
