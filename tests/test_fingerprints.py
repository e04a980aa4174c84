import os
import threading
import unittest
from concurrent.futures import ThreadPoolExecutor

import mongomock
import numpy as np
from pymongo.errors import AutoReconnect

from songstore import Couple, DocumentStore, FingerprintIndex, StoreConfig
from songstore.errors import CorruptRecordError, FingerprintIndexError, InvalidParametersError


def _memory_store() -> DocumentStore:
    return DocumentStore(client=mongomock.MongoClient())


class StoreAndFetchTests(unittest.TestCase):
    def setUp(self):
        self.store = _memory_store()
        self.index = FingerprintIndex(self.store)

    def tearDown(self):
        self.store.close()

    def test_appends_accumulate_in_order(self):
        c1, c2 = Couple(100, 7), Couple(250, 9)
        self.index.store_fingerprints({0xDEADBEEF: [c1]})
        self.index.store_fingerprints({0xDEADBEEF: [c2]})

        self.assertEqual(self.index.get_couples([0xDEADBEEF]), {0xDEADBEEF: [c1, c2]})

    def test_duplicates_are_kept(self):
        c = Couple(1, 1)
        self.index.store_fingerprints({5: [c, c]})
        self.index.store_fingerprints({5: [c]})
        self.assertEqual(self.index.get_couples([5])[5], [c, c, c])

    def test_missing_address_is_omitted(self):
        self.index.store_fingerprints({1: [Couple(10, 2)]})
        self.assertEqual(self.index.get_couples([42]), {})
        self.assertEqual(self.index.get_couples([1, 42]), {1: [Couple(10, 2)]})

    def test_many_addresses_across_batches(self):
        index = FingerprintIndex(self.store, batch_size=3)
        mapping = {addr: [Couple(addr * 10, addr % 4)] for addr in range(10)}
        self.assertEqual(index.store_fingerprints(mapping), 10)

        result = index.get_couples(list(range(12)))
        self.assertEqual(result, mapping)

    def test_accepts_tuples_and_numpy_keys(self):
        self.index.store_fingerprints({np.uint32(77): [(5, 6)]})
        self.assertEqual(self.index.get_couples([77]), {77: [Couple(5, 6)]})

    def test_empty_couple_list_creates_nothing(self):
        self.assertEqual(self.index.store_fingerprints({3: []}), 0)
        self.assertEqual(self.index.get_couples([3]), {})

    def test_invalid_address_rejected_before_writing(self):
        with self.assertRaises(InvalidParametersError):
            self.index.store_fingerprints({1: [Couple(1, 1)], 2 ** 32: [Couple(1, 1)]})
        self.assertEqual(self.index.get_couples([1]), {})

    def test_drop_all(self):
        self.index.store_fingerprints({1: [Couple(1, 1)]})
        self.index.drop_all()
        self.assertEqual(self.index.get_couples([1]), {})

    def test_stored_document_shape(self):
        self.index.store_fingerprints({9: [Couple(12, 34)]})
        doc = self.store.collection("fingerprints").find_one({"_id": 9})
        self.assertEqual(doc, {"_id": 9, "couples": [{"anchorTimeMs": 12, "songID": 34}]})


class CorruptRecordTests(unittest.TestCase):
    def setUp(self):
        self.store = _memory_store()
        self.index = FingerprintIndex(self.store)
        self.raw = self.store.collection("fingerprints")

    def test_couples_not_a_list(self):
        self.raw.insert_one({"_id": 1, "couples": "nope"})
        with self.assertRaises(CorruptRecordError) as ctx:
            self.index.get_couples([1])
        self.assertEqual(ctx.exception.key, 1)

    def test_bad_couple_fields(self):
        self.index.store_fingerprints({2: [Couple(1, 1)]})
        self.raw.insert_one({"_id": 3, "couples": [{"anchorTimeMs": "x", "songID": 1}]})
        with self.assertRaises(CorruptRecordError) as ctx:
            self.index.get_couples([2, 3])
        self.assertEqual(ctx.exception.key, 3)
        self.assertEqual(ctx.exception.collection, "fingerprints")

    def test_bool_is_not_an_int(self):
        self.raw.insert_one({"_id": 4, "couples": [{"anchorTimeMs": True, "songID": 1}]})
        with self.assertRaises(CorruptRecordError):
            self.index.get_couples([4])


class _FlakyCollection:
    """Fails the upsert for one address, records everything else."""

    def __init__(self, fail_on):
        self.fail_on = fail_on
        self.calls = []

    def update_one(self, flt, update, upsert=False):
        if flt["_id"] == self.fail_on:
            raise AutoReconnect("connection reset")
        self.calls.append((flt, update, upsert))


class _FakeStore:
    def __init__(self, collection):
        self._collection = collection

    def collection(self, name):
        return self._collection


class FailureTests(unittest.TestCase):
    def test_first_failure_aborts_and_keeps_prior_writes(self):
        coll = _FlakyCollection(fail_on=2)
        index = FingerprintIndex(_FakeStore(coll))

        with self.assertRaises(FingerprintIndexError) as ctx:
            index.store_fingerprints({1: [Couple(1, 1)], 2: [Couple(2, 2)], 3: [Couple(3, 3)]})

        self.assertEqual(ctx.exception.address, 2)
        self.assertIn("2", str(ctx.exception))
        self.assertEqual([c[0]["_id"] for c in coll.calls], [1])

    def test_single_upsert_push_per_address(self):
        coll = _FlakyCollection(fail_on=None)
        FingerprintIndex(_FakeStore(coll)).store_fingerprints({8: [Couple(1, 2), Couple(3, 4)]})

        self.assertEqual(coll.calls, [(
            {"_id": 8},
            {"$push": {"couples": {"$each": [
                {"anchorTimeMs": 1, "songID": 2},
                {"anchorTimeMs": 3, "songID": 4},
            ]}}},
            True,
        )])


class _AtomicPushCollection:
    """Applies $push upserts under a lock, the way the server mutates one document."""

    def __init__(self):
        self.docs = {}
        self.lock = threading.Lock()

    def update_one(self, flt, update, upsert=False):
        with self.lock:
            doc = self.docs.setdefault(flt["_id"], {"_id": flt["_id"], "couples": []})
            doc["couples"].extend(update["$push"]["couples"]["$each"])

    def find(self, flt):
        with self.lock:
            return [dict(self.docs[i], couples=list(self.docs[i]["couples"]))
                    for i in flt["_id"]["$in"] if i in self.docs]


class ConcurrentAppendTests(unittest.TestCase):
    def test_no_lost_appends(self):
        coll = _AtomicPushCollection()
        index = FingerprintIndex(_FakeStore(coll))

        def worker(song_id):
            for t in range(50):
                index.store_fingerprints({1234: [Couple(t, song_id)]})

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(worker, range(8)))

        couples = index.get_couples([1234])[1234]
        self.assertEqual(len(couples), 8 * 50)
        for song_id in range(8):
            mine = [c.anchor_time_ms for c in couples if c.song_id == song_id]
            self.assertEqual(mine, list(range(50)))


@unittest.skipUnless(os.environ.get("SONGSTORE_TEST_MONGO_URI"), "needs a live MongoDB")
class LiveMongoStressTests(unittest.TestCase):
    def setUp(self):
        from pymongo import MongoClient

        self.client = MongoClient(os.environ["SONGSTORE_TEST_MONGO_URI"])
        self.store = DocumentStore(StoreConfig(database="songstore-test"), client=self.client)
        self.index = FingerprintIndex(self.store, collection="fingerprints_stress")
        self.index.drop_all()

    def tearDown(self):
        self.index.drop_all()
        self.store.close()

    def test_disjoint_concurrent_appends(self):
        def worker(song_id):
            for t in range(200):
                self.index.store_fingerprints({99: [Couple(t, song_id)]})

        with ThreadPoolExecutor(max_workers=16) as pool:
            list(pool.map(worker, range(16)))

        couples = self.index.get_couples([99])[99]
        self.assertEqual(len(couples), 16 * 200)
        self.assertEqual({c.song_id for c in couples}, set(range(16)))


if __name__ == "__main__":
    unittest.main()
