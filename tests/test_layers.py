from datetime import UTC, datetime, timedelta
from pathlib import Path

from deblayer.layers import Layer
from deblayer.models import CacheRecord, LayerEnvironment


def test_paths(tmp_path: Path):
    layer = Layer(tmp_path, "packages")
    assert layer.path == (tmp_path / "packages").resolve()
    assert layer.record_path == (tmp_path / "packages.json").resolve()


def test_record_round_trip(tmp_path: Path):
    layer = Layer(tmp_path, "packages")
    assert layer.read_record() is None

    record = CacheRecord(fingerprint="abc")
    layer.write_record(record)

    assert layer.read_record() == record
    layer.delete_record()
    assert layer.read_record() is None


def test_unreadable_record_is_ignored(tmp_path: Path):
    layer = Layer(tmp_path, "packages")
    layer.record_path.write_text("{not json")
    assert layer.read_record() is None


def test_restore_fresh_layer(tmp_path: Path):
    layer = Layer(tmp_path, "packages")
    layer.path.mkdir()
    (layer.path / "payload").write_text("kept")
    layer.write_record(CacheRecord(fingerprint="abc"))

    assert layer.restore_or_reset("abc", 7) is True
    assert (layer.path / "payload").read_text() == "kept"


def test_reset_on_changed_fingerprint(tmp_path: Path):
    layer = Layer(tmp_path, "packages")
    layer.path.mkdir()
    (layer.path / "payload").write_text("stale")
    layer.write_record(CacheRecord(fingerprint="abc"))

    assert layer.restore_or_reset("def", 7) is False
    assert layer.path.is_dir()
    assert list(layer.path.iterdir()) == []
    # record only comes back once the caller has rebuilt the layer
    assert not layer.record_path.exists()


def test_reset_on_expired_record(tmp_path: Path):
    layer = Layer(tmp_path, "packages")
    layer.path.mkdir()
    created_at = datetime.now(UTC) - timedelta(days=8)
    layer.write_record(CacheRecord(fingerprint="abc", created_at=created_at))

    assert layer.restore_or_reset("abc", 7) is False


def test_zero_days_always_resets(tmp_path: Path):
    layer = Layer(tmp_path, "packages")
    layer.path.mkdir()
    layer.write_record(CacheRecord(fingerprint="abc"))

    assert layer.restore_or_reset("abc", 0) is False


def test_write_environment(tmp_path: Path):
    layer = Layer(tmp_path, "packages")
    layer.reset()
    environment = LayerEnvironment()
    environment.prepend("PATH", ["/layers/packages/bin", "/layers/packages/usr/bin"])
    environment.prepend("EMPTY", [])

    env_dir = layer.write_environment(environment)

    assert (env_dir / "PATH.prepend").read_text() == "/layers/packages/bin:/layers/packages/usr/bin"
    assert (env_dir / "PATH.delim").read_text() == ":"
    assert not (env_dir / "EMPTY.prepend").exists()
