"""Tests for the device mode state machine."""

import pytest

from branchplayer.models.device import AuthUser, status_label
from branchplayer.models.playback import EditState
from branchplayer.services.device_controller import DEVICE_MODE_KEY
from branchplayer.state.doc_paths import command_doc, songs_collection, status_doc
from conftest import ADMIN_EMAIL, seed_songs, settle


class TestStart:
    @pytest.mark.anyio
    async def test_nothing_persisted(self, session):
        await session.controller.start()

        assert session.ctx.mode == "unset"
        assert session.ctx.status_message == "Device setup required"
        assert not session.library.subscribed

    @pytest.mark.anyio
    async def test_restores_persisted_mode(self, session, store, local):
        local.set_config(DEVICE_MODE_KEY, "branch2")
        seed_songs(store, "branch2", {"A": 1})

        await session.controller.start()
        await settle(session)

        assert session.ctx.mode == "branch2"
        assert session.ctx.branch == "branch2"
        assert session.commands.listening
        assert [s.id for s in session.ctx.songs] == ["A"]
        assert session.ctx.status_message == "Branch 2 player"

    @pytest.mark.anyio
    async def test_unknown_persisted_value_is_unset(self, session, local):
        local.set_config(DEVICE_MODE_KEY, "branch7")

        await session.controller.start()

        assert session.ctx.mode == "unset"

    @pytest.mark.anyio
    async def test_loads_cached_ids(self, session, local):
        local.put_audio("A", b"x")

        await session.controller.start()

        assert session.cache.cached_ids == {"A"}


class TestSetMode:
    @pytest.mark.anyio
    async def test_fixed_mode_persists_and_listens(self, session, store, local):
        await session.controller.set_mode("branch1")

        assert local.get_config(DEVICE_MODE_KEY) == "branch1"
        assert session.ctx.branch == "branch1"
        assert session.commands.listening
        assert command_doc("branch1") in store.active_watches()
        assert songs_collection("branch1") in store.active_watches()

    @pytest.mark.anyio
    async def test_without_persist(self, session, local):
        await session.controller.set_mode("branch1", persist=False)

        assert local.get_config(DEVICE_MODE_KEY) is None

    @pytest.mark.anyio
    async def test_general_mode_uses_default_branch(self, session, store):
        await session.controller.set_mode("general")

        assert session.ctx.branch == "branch2"
        assert not session.commands.listening
        assert session.ctx.status_message == "Signed out"

    @pytest.mark.anyio
    async def test_general_mode_keeps_chosen_branch(self, session):
        session.library.switch_branch("branch1")

        await session.controller.set_mode("general")

        assert session.ctx.branch == "branch1"

    @pytest.mark.anyio
    async def test_fixed_to_general_stops_commands(self, session):
        await session.controller.set_mode("branch1")
        await session.controller.set_mode("general")

        assert not session.commands.listening
        # free to switch now
        assert session.controller.switch_branch("branch2") is True

    @pytest.mark.anyio
    @pytest.mark.parametrize("new_mode", ["general", "branch2"])
    async def test_leaving_fixed_branch_clears_its_status(self, session, store, new_mode):
        seed_songs(store, "branch1", {"A": 1})
        await session.controller.set_mode("branch1")
        await settle(session)
        await session.queue.play(session.ctx.songs[0])
        await settle(session)
        assert status_doc("branch1") in store.docs

        await session.controller.set_mode(new_mode)
        await settle(session)

        assert status_doc("branch1") not in store.docs

    @pytest.mark.anyio
    async def test_invalid_mode(self, session):
        with pytest.raises(ValueError):
            await session.controller.set_mode("unset")


class TestReset:
    @pytest.mark.anyio
    async def test_reset_clears_everything(self, session, store, local):
        seed_songs(store, "branch1", {"A": 1, "B": 2})
        await session.controller.set_mode("branch1")
        await settle(session)
        await session.queue.play(session.ctx.songs[0])
        session.queue.set_playing(True)
        await settle(session)
        assert status_doc("branch1") in store.docs

        await session.controller.reset_mode()
        await settle(session)

        ctx = session.ctx
        assert status_doc("branch1") not in store.docs
        assert ctx.mode == "unset"
        assert ctx.branch is None
        assert ctx.songs == []
        assert ctx.playback.current_song is None
        assert session.queue.handle is None
        assert local.get_config(DEVICE_MODE_KEY) is None
        assert store.active_watches() == []
        assert ctx.status_message == "Device configuration reset"

    @pytest.mark.anyio
    async def test_reset_survives_store_failure(self, session, store, local):
        await session.controller.set_mode("branch1")
        await settle(session)
        store.fail_writes = True

        await session.controller.reset_mode()

        assert session.ctx.mode == "unset"
        assert local.get_config(DEVICE_MODE_KEY) is None
        assert session.ctx.status_message == "Device configuration reset"

    @pytest.mark.anyio
    async def test_teardown_keeps_persisted_mode(self, session, store, local):
        await session.controller.set_mode("branch2")
        session.queue.set_playing(True)
        await settle(session)

        await session.controller.teardown()

        assert status_doc("branch2") not in store.docs
        assert local.get_config(DEVICE_MODE_KEY) == "branch2"
        assert store.active_watches() == []

    @pytest.mark.anyio
    async def test_teardown_general_device(self, session, store, local):
        await session.controller.set_mode("general")
        await settle(session)

        await session.controller.teardown()

        assert store.active_watches() == []
        assert local.get_config(DEVICE_MODE_KEY) == "general"


class TestUser:
    @pytest.mark.anyio
    async def test_admin_sign_in_starts_monitoring(self, session):
        await session.controller.set_mode("general")

        session.controller.set_user(AuthUser(uid="a", email=ADMIN_EMAIL.upper()))

        assert session.ctx.is_admin
        assert session.mirror.monitoring_active
        assert session.ctx.status_message == "Admin mode"

    @pytest.mark.anyio
    async def test_sign_out_cancels_edit_and_monitoring(self, session):
        await session.controller.set_mode("general")
        session.controller.set_user(AuthUser(uid="a", email=ADMIN_EMAIL))
        session.ctx.editing = EditState(song_id="A")

        session.controller.set_user(None)

        assert session.ctx.editing is None
        assert not session.mirror.monitoring_active
        assert session.ctx.status_message == "Signed out"

    @pytest.mark.anyio
    async def test_regular_user(self, session):
        await session.controller.set_mode("general")

        session.controller.set_user(AuthUser(uid="u", email="someone@example.com"))

        assert not session.ctx.is_admin
        assert session.ctx.status_message == "Listening mode"


@pytest.mark.parametrize(
    "mode, admin, authed, label",
    [
        ("unset", True, True, "Device setup required"),
        (None, False, False, "Device setup required"),
        ("branch1", True, True, "Branch 1 player"),
        ("branch2", False, False, "Branch 2 player"),
        ("general", True, True, "Admin mode"),
        ("general", False, True, "Listening mode"),
        ("general", False, False, "Signed out"),
    ],
)
def test_status_label_precedence(mode, admin, authed, label):
    assert status_label(mode, admin, authed) == label
