import os
import sys
import threading

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

from routescan.domain.models import DeliveryStop
from routescan.orchestrator.reconcile import StopCollection, dedup_key, merge, sort_key


def _stop(stop_id: str, number: str, address: str, cep: str = "", city: str = "SP") -> DeliveryStop:
    return DeliveryStop(id=stop_id, stop_number=number, address=address, cep=cep, city=city)


def _keys(stops):
    return [dedup_key(s) for s in stops]


def test_merge_drops_later_duplicates_regardless_of_id():
    first = _stop("a", "5", "Rua A, 10", cep="01310-100")
    dup = _stop("b", "5", "  rua a, 10 ")
    merged = merge([first], [dup])
    assert merged == [first]


def test_duplicates_within_one_batch_collapse_to_first():
    a = _stop("a", "1", "Rua X")
    b = _stop("b", "1", "RUA X")
    assert merge([], [a, b]) == [a]


def test_same_address_with_different_stop_number_is_kept():
    a = _stop("a", "1", "Rua X")
    b = _stop("b", "2", "Rua X")
    assert merge([], [a, b]) == [a, b]


def test_non_numeric_stop_numbers_sort_as_zero():
    # Non-numeric labels count as 0 and therefore land in front.
    stops = [_stop("a", "7", "A"), _stop("b", "3a", "B"), _stop("c", "12", "C")]
    assert [s.stop_number for s in merge([], stops)] == ["3a", "7", "12"]


def test_unparsed_last_policy_moves_labels_behind_numbers():
    stops = [_stop("a", "7", "A"), _stop("b", "3a", "B"), _stop("c", "12", "C")]
    assert [s.stop_number for s in merge([], stops, unparsed_last=True)] == ["7", "12", "3a"]


def test_sort_key_parses_signed_integers_with_whitespace():
    assert sort_key(_stop("a", " 42 ", "A")) == 42
    assert sort_key(_stop("a", "-3", "A")) == -3
    assert sort_key(_stop("a", "", "A")) == 0
    assert sort_key(_stop("a", "1.5", "A")) == 0


def test_merge_tolerates_absurdly_long_stop_numbers():
    huge = _stop("a", "9" * 5000, "Rua Longa")
    plain = _stop("b", "2", "Rua B")
    merged = merge([], [huge, plain])
    assert sorted(s.id for s in merged) == ["a", "b"]


def test_sort_is_stable_for_equal_keys():
    stops = [_stop("a", "x", "A"), _stop("b", "0", "B"), _stop("c", "y", "C")]
    assert [s.id for s in merge([], stops)] == ["a", "b", "c"]


def test_merge_is_idempotent():
    current = [_stop("a", "2", "Rua B"), _stop("b", "10", "Rua C")]
    batch = [_stop("c", "1", "Rua A"), _stop("d", "2", "rua b"), _stop("e", "n/a", "Rua D")]
    once = merge(current, batch)
    twice = merge(once, batch)
    assert _keys(twice) == _keys(once)
    assert merge(once, []) == once


def test_collection_merge_remove_reset():
    coll = StopCollection()
    coll.merge([_stop("a", "2", "Rua B"), _stop("b", "1", "Rua A")])
    assert [s.id for s in coll] == ["b", "a"]

    assert coll.remove("a") is True
    assert coll.remove("a") is False
    assert coll.get("b") is not None
    assert len(coll) == 1

    # a removed key may come back with a new id
    coll.merge([_stop("z", "2", "Rua B")])
    assert [s.id for s in coll.snapshot()] == ["b", "z"]

    coll.reset()
    assert coll.snapshot() == []


def test_collection_snapshot_is_a_copy():
    coll = StopCollection([_stop("a", "1", "A")])
    snap = coll.snapshot()
    snap.clear()
    assert len(coll) == 1


def test_concurrent_merges_keep_keys_unique():
    coll = StopCollection()
    batches = [[_stop(f"{t}-{i}", str(i), f"Rua {i}") for i in range(50)] for t in range(8)]
    threads = [threading.Thread(target=coll.merge, args=(b,)) for b in batches]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    keys = _keys(coll.snapshot())
    assert len(keys) == len(set(keys)) == 50
