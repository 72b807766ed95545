"""
Unit tests for histogram bins and the ordered bin store.
"""

import math
import unittest

from tiny_hist.core.bins import Bin, BinStore, combine_bins, diff_bins


class TestBin(unittest.TestCase):
    """Tests for the Bin record."""

    def test_init(self):
        b = Bin(mean=10.0, count=5.0)
        self.assertEqual(b.mean, 10.0)
        self.assertEqual(b.count, 5.0)
        self.assertEqual(b.tss, 0.0)
        self.assertEqual(b.cumn, 0.0)

    def test_init_invalid(self):
        with self.assertRaises(ValueError):
            Bin(mean=1.0, count=0)
        with self.assertRaises(ValueError):
            Bin(mean=1.0, count=-1.0)
        with self.assertRaises(ValueError):
            Bin(mean=1.0, count=1.0, tss=-0.5)

    def test_repr(self):
        b = Bin(mean=12.3456, count=7.89)
        self.assertEqual(repr(b), "Bin(mean=12.35, count=7.89)")

    def test_copy_is_independent(self):
        b = Bin(mean=2.0, count=3.0, tss=1.5)
        c = b.copy()
        c.count += 1
        self.assertIsNot(b, c)
        self.assertEqual(b.count, 3.0)
        self.assertEqual((c.mean, c.tss), (2.0, 1.5))

    def test_serialization(self):
        b1 = Bin(mean=25.5, count=2.0, tss=0.25)
        data = b1.to_dict()
        self.assertEqual(data, {"mean": 25.5, "count": 2.0, "tss": 0.25})

        b2 = Bin.from_dict(data)
        self.assertEqual((b2.mean, b2.count, b2.tss), (25.5, 2.0, 0.25))

        # tss is optional
        b3 = Bin.from_dict({"mean": 1.0, "count": 1.0})
        self.assertEqual(b3.tss, 0.0)

    def test_deserialization_invalid(self):
        with self.assertRaises(ValueError):
            Bin.from_dict({"mean": 10})
        with self.assertRaises(ValueError):
            Bin.from_dict({"count": 5})
        with self.assertRaises(ValueError):
            Bin.from_dict({"mean": 10, "count": 0})


class TestBinArithmetic(unittest.TestCase):
    """Tests for the merge cost and combine helpers."""

    def test_diff_bins(self):
        a = Bin(0.0, 1.0)
        b = Bin(2.0, 3.0)
        self.assertEqual(diff_bins(a, b), 4.0)
        self.assertAlmostEqual(diff_bins(a, b, weighted=True), 4.0 * math.log(math.e + 1.0))

    def test_weighted_diff_penalizes_dense_bins(self):
        sparse = diff_bins(Bin(0.0, 1.0), Bin(1.0, 1.0), weighted=True)
        dense = diff_bins(Bin(0.0, 100.0), Bin(1.0, 100.0), weighted=True)
        self.assertGreater(dense, sparse)

    def test_combine_bins(self):
        a = Bin(1.0, 1.0)
        b = Bin(3.0, 3.0)
        merged = combine_bins(a, b)
        self.assertEqual(merged.mean, 2.5)
        self.assertEqual(merged.count, 4.0)
        self.assertEqual(merged.tss, 3.0)

        # Inputs are left untouched
        self.assertEqual((a.mean, a.count, a.tss), (1.0, 1.0, 0.0))
        self.assertEqual((b.mean, b.count, b.tss), (3.0, 3.0, 0.0))

    def test_combine_preserves_second_moment(self):
        # Pairwise merges give the same tss as the direct computation
        left = combine_bins(Bin(1.0), Bin(2.0))
        right = combine_bins(Bin(3.0), Bin(4.0))
        self.assertEqual(left.tss, 0.5)
        self.assertEqual(right.tss, 0.5)

        total = combine_bins(left, right)
        self.assertEqual(total.mean, 2.5)
        self.assertEqual(total.count, 4.0)
        self.assertEqual(total.tss, 5.0)


class TestBinStore(unittest.TestCase):
    """Tests for the ordered bin store."""

    def _store(self, *means):
        store = BinStore()
        for m in means:
            store.add(Bin(m))
        return store

    def test_empty(self):
        store = BinStore()
        self.assertEqual(len(store), 0)
        self.assertIsNone(store.min())
        self.assertIsNone(store.max())
        self.assertIsNone(store.nearest(1.0))
        self.assertIsNone(store.find(1.0))
        self.assertEqual(list(store.pairs()), [])

    def test_ordering(self):
        store = self._store(5.0, -1.0, 3.0, 10.0)
        self.assertEqual([b.mean for b in store], [-1.0, 3.0, 5.0, 10.0])
        self.assertEqual([b.mean for b in reversed(store)], [10.0, 5.0, 3.0, -1.0])
        self.assertEqual(store.min().mean, -1.0)
        self.assertEqual(store.max().mean, 10.0)
        self.assertEqual(store[1].mean, 3.0)

    def test_remove(self):
        store = self._store(1.0, 2.0, 3.0)
        middle = store[1]
        store.remove(middle)
        self.assertEqual([b.mean for b in store], [1.0, 3.0])
        with self.assertRaises(ValueError):
            store.remove(middle)

    def test_bisect_and_find(self):
        store = self._store(1.0, 2.0, 4.0)
        self.assertEqual(store.bisect_left(0.0), 0)
        self.assertEqual(store.bisect_left(2.0), 1)
        self.assertEqual(store.bisect_left(3.0), 2)
        self.assertEqual(store.bisect_left(5.0), 3)
        self.assertIs(store.find(2.0), store[1])
        self.assertIsNone(store.find(3.0))

    def test_nearest(self):
        store = self._store(0.0, 10.0)
        self.assertEqual(store.nearest(4.0).mean, 0.0)
        self.assertEqual(store.nearest(6.0).mean, 10.0)
        self.assertEqual(store.nearest(-5.0).mean, 0.0)
        self.assertEqual(store.nearest(15.0).mean, 10.0)
        self.assertEqual(store.nearest(10.0).mean, 10.0)
        # Ties go to the successor
        self.assertEqual(store.nearest(5.0).mean, 10.0)

    def test_pairs(self):
        store = self._store(3.0, 1.0, 2.0)
        pairs = [(a.mean, b.mean) for a, b in store.pairs()]
        self.assertEqual(pairs, [(1.0, 2.0), (2.0, 3.0)])

    def test_replace(self):
        store = self._store(1.0, 2.0, 5.0)
        a, b = store[0], store[1]
        merged = store.replace(a, b, combine_bins(a, b))
        self.assertEqual(len(store), 2)
        self.assertIs(store[0], merged)
        self.assertEqual(merged.mean, 1.5)
        self.assertEqual(merged.count, 2.0)

    def test_cumulate(self):
        store = BinStore()
        store.add(Bin(1.0, 1.0))
        store.add(Bin(2.0, 2.0))
        store.add(Bin(3.0, 1.0))

        total = store.cumulate()
        self.assertEqual(total, 4.0)
        self.assertEqual([b.cumn for b in store], [0.5, 2.0, 3.5])

        self.assertEqual(store.bisect_cumn(0.1), 0)
        self.assertEqual(store.bisect_cumn(0.5), 1)
        self.assertEqual(store.bisect_cumn(2.0), 2)
        self.assertEqual(store.bisect_cumn(3.9), 3)

    def test_clear(self):
        store = self._store(1.0, 2.0)
        store.cumulate()
        store.clear()
        self.assertEqual(len(store), 0)
        self.assertEqual(list(store), [])
        self.assertEqual(store.bisect_cumn(1.0), 0)


if __name__ == "__main__":
    unittest.main()
