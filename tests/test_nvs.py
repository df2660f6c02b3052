import pytest

from dapbridge.nvs import NvsNotFoundError, NvsStore, get_once


@pytest.mark.parametrize("size, value", [(1, 200), (2, 60000), (4, 4000000000), (8, 2**63)])
def test_integer_round_trip(size, value):
    store = NvsStore()
    with store.open("ns") as handle:
        handle.set(9, value, size)
        assert handle.get(9, size) == value


def test_blob_round_trip():
    store = NvsStore()
    with store.open("ns") as handle:
        handle.set(8, b"abcdefghijk", 11)
        assert handle.get(8, 11) == b"abcdefghijk"
        assert handle.get(8, 40) == b"abcdefghijk"


def test_blob_too_large_for_buffer():
    store = NvsStore()
    with store.open("ns") as handle:
        handle.set(8, b"abcdefghijk", 11)
        with pytest.raises(ValueError):
            handle.get(8, 3)


def test_missing_key_raises():
    store = NvsStore()
    with pytest.raises(NvsNotFoundError):
        store.open("ns").get(1, 4)


def test_type_mismatch_is_not_found():
    store = NvsStore()
    handle = store.open("ns")
    handle.set(1, 5, 4)
    with pytest.raises(NvsNotFoundError):
        handle.get(1, 2)


def test_namespaces_are_separate():
    store = NvsStore()
    store.open("one").set(1, 5, 4)
    with pytest.raises(NvsNotFoundError):
        store.open("two").get(1, 4)


def test_zero_size_stores_marker():
    store = NvsStore()
    handle = store.open("ns")
    handle.set(3, 123, 0)
    assert handle.get(3, 0) == 0xFF


def test_value_out_of_range():
    handle = NvsStore().open("ns")
    with pytest.raises(ValueError):
        handle.set(1, 256, 1)
    with pytest.raises(ValueError):
        handle.set(1, -1, 4)


def test_short_blob_rejected():
    with pytest.raises(ValueError):
        NvsStore().open("ns").set(1, b"ab", 5)


def test_invalid_namespace():
    with pytest.raises(ValueError):
        NvsStore().open("")
    with pytest.raises(ValueError):
        NvsStore().open("x" * 16)


def test_committed_values_persist(tmp_path):
    path = tmp_path / "nvs.json"
    with NvsStore(path).open("ns") as handle:
        handle.set(2, 77, 4)
        handle.set(8, b"\x00\x01blob", 6)
    reopened = NvsStore(path)
    assert get_once(reopened, "ns", 2, 4) == 77
    assert get_once(reopened, "ns", 8, 6) == b"\x00\x01blob"


def test_uncommitted_values_not_persisted(tmp_path):
    path = tmp_path / "nvs.json"
    NvsStore(path).open("ns").set(2, 77, 4)
    with pytest.raises(NvsNotFoundError):
        get_once(NvsStore(path), "ns", 2, 4)


def test_corrupt_file_is_erased(tmp_path):
    path = tmp_path / "nvs.json"
    path.write_text("not json", encoding="utf-8")
    store = NvsStore(path)
    with pytest.raises(NvsNotFoundError):
        get_once(store, "ns", 2, 4)