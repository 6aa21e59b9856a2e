import json

from helpers import fix
from nearcast.client.location import store as store_module
from nearcast.client.location.store import LastKnownPositionStore


def test_save_and_load_per_device(tmp_path):
	path = tmp_path / "cache" / "positions.json"
	phone = LastKnownPositionStore(path, "phone")
	tablet = LastKnownPositionStore(path, "tablet")

	phone.save(fix(1.0, 2.0, captured_at=10.0))
	tablet.save(fix(3.0, 4.0, captured_at=20.0))
	phone.save(fix(5.0, 6.0, captured_at=30.0))

	assert phone.load() == fix(5.0, 6.0, captured_at=30.0)
	assert tablet.load().latitude == 3.0
	assert set(json.loads(path.read_text())) == {"phone", "tablet"}


def test_missing_or_corrupt_cache_yields_nothing(tmp_path):
	path = tmp_path / "positions.json"
	store = LastKnownPositionStore(path, "phone")
	assert store.load() is None

	path.write_text("{not json")
	assert store.load() is None

	path.write_text(json.dumps({"phone": {"latitude": "north"}}))
	assert store.load() is None


def test_clear_removes_only_this_device(tmp_path):
	path = tmp_path / "positions.json"
	phone = LastKnownPositionStore(path, "phone")
	tablet = LastKnownPositionStore(path, "tablet")
	phone.save(fix(captured_at=1.0))
	tablet.save(fix(captured_at=2.0))

	phone.clear()
	phone.clear()

	assert phone.load() is None
	assert tablet.load() is not None


def test_failed_write_leaves_no_temp_file_and_keeps_old_cache(tmp_path, monkeypatch):
	path = tmp_path / "positions.json"
	store = LastKnownPositionStore(path, "phone")
	store.save(fix(1.0, 2.0, captured_at=10.0))

	def broken_dump(data, fh):
		fh.write("{")
		raise ValueError("cannot serialise")

	monkeypatch.setattr(store_module.json, "dump", broken_dump)
	store.save(fix(3.0, 4.0, captured_at=20.0))
	store.clear()

	assert [p.name for p in tmp_path.iterdir()] == ["positions.json"]
	monkeypatch.undo()
	assert store.load() == fix(1.0, 2.0, captured_at=10.0)


def test_clear_swaps_file_atomically(tmp_path, monkeypatch):
	path = tmp_path / "positions.json"
	LastKnownPositionStore(path, "tablet").save(fix(captured_at=1.0))
	phone = LastKnownPositionStore(path, "phone")
	phone.save(fix(captured_at=2.0))
	replaced = []
	real_replace = store_module.os.replace

	def recording_replace(src, dst):
		replaced.append(dst)
		real_replace(src, dst)

	monkeypatch.setattr(store_module.os, "replace", recording_replace)
	phone.clear()

	assert replaced == [path]
	assert set(json.loads(path.read_text())) == {"tablet"}
