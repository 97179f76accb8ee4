"""Tests for the play queue, shuffle/repeat and cache-first loading."""

import os
import random

import pytest

from branchplayer.models.playback import EditState
from branchplayer.services.playback_queue import shuffled
from conftest import AUDIO_BYTES, make_song, seed_songs, settle


async def _load_library(session, store, songs):
    seed_songs(store, "branch1", songs)
    session.library.switch_branch("branch1")
    await settle(session)
    return session.ctx.songs


def test_shuffled_is_a_permutation_and_leaves_input_alone():
    songs = [make_song(str(i), i) for i in range(10)]
    before = list(songs)
    out = shuffled(songs, random.Random(3))
    assert songs == before
    assert sorted(s.id for s in out) == sorted(s.id for s in songs)


@pytest.mark.anyio
async def test_next_wraps_to_start(session, store):
    a, b, c = await _load_library(session, store, {"A": 1, "B": 2, "C": 3})
    await session.queue.play(c)
    assert session.ctx.playback.current_queue_index == 2

    await session.queue.play_next()

    pb = session.ctx.playback
    assert pb.current_queue_index == 0
    assert pb.current_song.id == "A"


@pytest.mark.anyio
async def test_previous_wraps_to_end(session, store):
    a, b, c = await _load_library(session, store, {"A": 1, "B": 2, "C": 3})
    await session.queue.play(a)

    await session.queue.play_previous()

    assert session.ctx.playback.current_queue_index == 2
    assert session.ctx.playback.current_song.id == "C"


@pytest.mark.anyio
@pytest.mark.parametrize("start", [0, 1, 2, 3])
async def test_next_then_previous_returns_to_same_index(session, store, start):
    songs = await _load_library(session, store, {"A": 1, "B": 2, "C": 3, "D": 4})
    await session.queue.play(songs[start])

    await session.queue.play_next()
    await session.queue.play_previous()
    assert session.ctx.playback.current_queue_index == start

    await session.queue.play_previous()
    await session.queue.play_next()
    assert session.ctx.playback.current_queue_index == start


@pytest.mark.anyio
async def test_single_song_queue_wraps_onto_itself(session, store):
    (only,) = await _load_library(session, store, {"A": 1})
    await session.queue.play(only)

    await session.queue.play_next()
    assert session.ctx.playback.current_queue_index == 0
    await session.queue.play_previous()
    assert session.ctx.playback.current_queue_index == 0


@pytest.mark.anyio
async def test_next_on_empty_queue_is_noop(session):
    await session.queue.play_next()
    await session.queue.play_previous()

    pb = session.ctx.playback
    assert pb.current_song is None
    assert pb.current_queue_index == -1


@pytest.mark.anyio
async def test_shuffle_on_puts_current_song_first(session, store):
    songs = await _load_library(session, store, {"A": 1, "B": 2, "C": 3, "D": 4, "E": 5})
    await session.queue.play(songs[2])

    session.queue.toggle_shuffle()

    pb = session.ctx.playback
    assert pb.is_shuffle
    assert pb.play_queue[0].id == "C"
    assert sorted(s.id for s in pb.play_queue) == ["A", "B", "C", "D", "E"]
    assert pb.current_queue_index == 0


@pytest.mark.anyio
async def test_shuffle_off_restores_list_order(session, store):
    songs = await _load_library(session, store, {"A": 1, "B": 2, "C": 3})
    await session.queue.play(songs[1])
    session.queue.toggle_shuffle()

    session.queue.toggle_shuffle()

    pb = session.ctx.playback
    assert not pb.is_shuffle
    assert pb.play_queue == session.ctx.songs
    assert pb.current_queue_index == 1


@pytest.mark.anyio
async def test_shuffle_with_nothing_playing(session, store):
    await _load_library(session, store, {"A": 1, "B": 2, "C": 3})

    session.queue.toggle_shuffle()

    pb = session.ctx.playback
    assert sorted(s.id for s in pb.play_queue) == ["A", "B", "C"]
    assert pb.current_queue_index == -1


@pytest.mark.anyio
async def test_play_under_shuffle_starts_queue_with_song(session, store):
    songs = await _load_library(session, store, {"A": 1, "B": 2, "C": 3, "D": 4})
    session.queue.toggle_shuffle()

    await session.queue.play(songs[3])

    pb = session.ctx.playback
    assert pb.play_queue[0].id == "D"
    assert pb.current_queue_index == 0
    assert pb.current_list_index == 3


@pytest.mark.anyio
async def test_list_index_follows_library_not_queue(session, store):
    songs = await _load_library(session, store, {"A": 1, "B": 2, "C": 3, "D": 4})
    session.queue.toggle_shuffle()
    await session.queue.play(songs[0])

    await session.queue.play_next()

    pb = session.ctx.playback
    assert pb.current_list_index == [s.id for s in songs].index(pb.current_song.id)


@pytest.mark.anyio
async def test_play_ignored_while_editing(session, store):
    songs = await _load_library(session, store, {"A": 1, "B": 2})
    session.ctx.editing = EditState(song_id="A")

    await session.queue.play(songs[1])

    assert session.ctx.playback.current_song is None


def test_repeat_mode_cycles(session):
    assert session.queue.set_repeat_mode() == "one"
    assert session.queue.set_repeat_mode() == "all"
    assert session.queue.set_repeat_mode() == "off"
    assert session.queue.set_repeat_mode("all") == "all"


def test_repeat_mode_rejects_unknown(session):
    with pytest.raises(ValueError):
        session.queue.set_repeat_mode("sometimes")


@pytest.mark.anyio
async def test_song_end_with_repeat_one_replays(session, store):
    songs = await _load_library(session, store, {"A": 1, "B": 2})
    await session.queue.play(songs[0])
    session.queue.set_repeat_mode("one")

    await session.queue.on_song_ended()

    assert session.ctx.playback.current_song.id == "A"


@pytest.mark.anyio
async def test_song_end_on_last_song_without_repeat_stops(session, store):
    songs = await _load_library(session, store, {"A": 1, "B": 2})
    await session.queue.play(songs[1])
    session.queue.set_playing(True)

    await session.queue.on_song_ended()

    pb = session.ctx.playback
    assert pb.current_song.id == "B"
    assert pb.is_playing is False


@pytest.mark.anyio
async def test_song_end_with_repeat_all_wraps(session, store):
    songs = await _load_library(session, store, {"A": 1, "B": 2})
    await session.queue.play(songs[1])
    session.queue.set_repeat_mode("all")

    await session.queue.on_song_ended()

    assert session.ctx.playback.current_song.id == "A"


@pytest.mark.anyio
async def test_cache_miss_plays_remote_then_caches(session, store, local):
    (song,) = await _load_library(session, store, {"A": 1})

    await session.queue.load_and_play(song)

    pb = session.ctx.playback
    assert pb.source == song.src
    assert pb.is_local is False
    assert session.queue.handle is None

    await session.ctx.runner.drain()
    assert local.get_audio("A") == AUDIO_BYTES
    assert "A" in session.cache.cached_ids


@pytest.mark.anyio
async def test_cache_hit_plays_local_handle(session, store, local):
    (song,) = await _load_library(session, store, {"A": 1})
    local.put_audio("A", AUDIO_BYTES)

    await session.queue.load_and_play(song)

    pb = session.ctx.playback
    handle = session.queue.handle
    assert pb.is_local is True
    assert pb.source == "http://device.local/player/local-audio?songId=A"
    assert pb.source == handle.url
    with open(handle.path, "rb") as f:
        assert f.read() == AUDIO_BYTES


@pytest.mark.anyio
async def test_new_load_releases_previous_handle(session, store, local):
    a, b = await _load_library(session, store, {"A": 1, "B": 2})
    local.put_audio("A", AUDIO_BYTES)
    local.put_audio("B", AUDIO_BYTES)

    await session.queue.load_and_play(a)
    first = session.queue.handle
    await session.queue.load_and_play(b)

    assert first.released
    assert not os.path.exists(first.path)
    assert session.queue.handle.song_id == "B"


@pytest.mark.anyio
async def test_removing_current_song_stops_and_clears(session, store, local):
    songs = await _load_library(session, store, {"A": 1, "B": 2, "C": 3})
    local.put_audio("C", AUDIO_BYTES)
    await session.queue.play(songs[2])
    handle = session.queue.handle

    session.queue.remove_song("C")

    pb = session.ctx.playback
    assert pb.current_song is None
    assert pb.is_playing is False
    assert handle.released
    assert [s.id for s in pb.play_queue] == ["A", "B"]
    assert (pb.current_queue_index, pb.current_list_index) == (-1, -1)


@pytest.mark.anyio
async def test_removing_earlier_song_clamps_queue_index(session, store):
    songs = await _load_library(session, store, {"A": 1, "B": 2, "C": 3})
    await session.queue.play(songs[2])

    session.queue.remove_song("A")

    pb = session.ctx.playback
    assert pb.current_song.id == "C"
    assert pb.current_queue_index == 1
    assert pb.play_queue[pb.current_queue_index].id == "C"
