import pytest

from vrcd.credentials import UserRecord
from vrcd.errors import CorruptState, IOFailure
from vrcd.persistence import PersistenceManager, PersistentState
from vrcd.rooms import RoomRecord


def _sample_state() -> PersistentState:
    return PersistentState(
        users={
            "nova": UserRecord("nova", "c2FsdA==", "aGFzaA==", "rig-device", is_admin=True),
            "gamer": UserRecord("gamer", "c2FsdA==", "aGFzaA==", "demo-device", seeded=True),
        },
        device_tokens={"ab" * 16: "nova"},
        rooms={
            "room-1": RoomRecord(
                room_id="room-1",
                name="Friday raid",
                preferred_transport="udp",
                mtu=1400,
                overlay_subnet="10.0.1.0/24",
                members={"rig-device": "nova"},
            )
        },
    )


def test_missing_file_loads_empty(tmp_path) -> None:
    state = PersistenceManager(str(tmp_path / "state.toml")).load()
    assert state == PersistentState()


def test_disabled_manager_is_a_no_op() -> None:
    pm = PersistenceManager(None)
    assert not pm.enabled
    pm.save(_sample_state())
    assert pm.load() == PersistentState()


def test_save_then_load(tmp_path) -> None:
    path = tmp_path / "nested" / "state.toml"
    pm = PersistenceManager(str(path))
    pm.save(_sample_state())

    assert path.exists()
    assert not pm.tmp_path().exists()
    assert "session" not in path.read_text(encoding="utf-8")

    loaded = PersistenceManager(str(path)).load()
    assert loaded == _sample_state()


def test_state_file_is_private(tmp_path) -> None:
    path = tmp_path / "state.toml"
    PersistenceManager(str(path)).save(_sample_state())
    assert path.stat().st_mode & 0o077 == 0


def test_unparseable_file_is_corrupt(tmp_path) -> None:
    path = tmp_path / "state.toml"
    path.write_text("users = [unterminated\n", encoding="utf-8")
    with pytest.raises(CorruptState):
        PersistenceManager(str(path)).load()


def test_binary_file_is_corrupt(tmp_path) -> None:
    path = tmp_path / "state.toml"
    path.write_bytes(b"\xff\xfe\x00garbage")
    with pytest.raises(CorruptState):
        PersistenceManager(str(path)).load()


@pytest.mark.parametrize(
    "text",
    [
        "users = 5\n",
        '[users.nova]\nsalt = 1\npassword_hash = "x"\n',
        '[device_tokens]\nabc = 7\n',
        '[rooms."room-1"]\nname = "r"\noverlay_subnet = "10.0.1.0/24"\nmtu = "big"\n',
        '[rooms."room-1"]\nname = "r"\noverlay_subnet = "10.0.1.0/24"\nmembers = 3\n',
    ],
)
def test_wrong_shapes_are_corrupt(tmp_path, text) -> None:
    path = tmp_path / "state.toml"
    path.write_text(text, encoding="utf-8")
    with pytest.raises(CorruptState):
        PersistenceManager(str(path)).load()


def test_failed_rename_keeps_previous_snapshot(tmp_path, monkeypatch) -> None:
    path = tmp_path / "state.toml"
    pm = PersistenceManager(str(path))
    pm.save(_sample_state())
    before = path.read_text(encoding="utf-8")

    def boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("vrcd.persistence.os.replace", boom)
    with pytest.raises(IOFailure):
        pm.save(PersistentState())

    assert path.read_text(encoding="utf-8") == before
    assert not pm.tmp_path().exists()


@pytest.mark.parametrize("key", ["is_admin", "seeded"])
def test_non_boolean_flags_are_corrupt(tmp_path, key) -> None:
    path = tmp_path / "state.toml"
    path.write_text(
        f'[users.nova]\nsalt = "s"\npassword_hash = "h"\n{key} = "false"\n', encoding="utf-8"
    )
    with pytest.raises(CorruptState):
        PersistenceManager(str(path)).load()


def test_unencodable_state_is_io_failure(tmp_path) -> None:
    path = tmp_path / "state.toml"
    pm = PersistenceManager(str(path))
    pm.save(_sample_state())
    before = path.read_bytes()

    state = _sample_state()
    state.rooms["room-1"].members["\ud800"] = "nova"
    with pytest.raises(IOFailure):
        pm.save(state)

    assert path.read_bytes() == before
    assert not pm.tmp_path().exists()


def test_failed_write_removes_temp_file(tmp_path, monkeypatch) -> None:
    path = tmp_path / "state.toml"
    pm = PersistenceManager(str(path))

    def boom(fd):
        raise OSError("fsync failed")

    monkeypatch.setattr("vrcd.persistence.os.fsync", boom)
    with pytest.raises(IOFailure):
        pm.save(_sample_state())

    assert not path.exists()
    assert not pm.tmp_path().exists()
