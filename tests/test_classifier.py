"""Tests for the chi-square chunk classifier."""

import os
import random
import threading
from array import array

import numpy as np
import pytest

from chunk_entropy.classifier import (
    CHUNK_SIZE,
    NORMALIZED_THRESHOLD,
    REFERENCE_THRESHOLD,
    BufferTooShortError,
    ChunkError,
    EntropyClassifier,
    InvalidLengthError,
    Verdict,
    byte_histogram,
    chi_square_sum,
    chunk_statistic,
    classify,
    expected_count,
    scaled_threshold,
    verdict_for,
)

UNIFORM = bytes(range(256)) * 16
SINGLE = b"\xab" * CHUNK_SIZE
PROSE = (
    b"It was the best of times, it was the worst of times, it was the age of "
    b"wisdom, it was the age of foolishness, it was the epoch of belief.\n"
) * 40
PROSE = PROSE[:CHUNK_SIZE]


def _from_counts(counts):
    return b"".join(bytes([value]) * n for value, n in enumerate(counts))


def _paired(deltas):
    """4096-byte buffer whose buckets deviate from 16 by +d / -d in pairs."""
    counts = [16] * 256
    for i, d in enumerate(deltas):
        counts[2 * i] += d
        counts[2 * i + 1] -= d
    return _from_counts(counts)


class TestHistogram:
    def test_sums_to_length(self):
        data = os.urandom(CHUNK_SIZE)
        assert int(byte_histogram(data).sum()) == CHUNK_SIZE

    def test_sums_to_prefix_length(self):
        data = os.urandom(5000)
        assert int(byte_histogram(data, 1234).sum()) == 1234

    def test_counts(self):
        hist = byte_histogram(b"aab")
        assert len(hist) == 256
        assert hist[ord("a")] == 2
        assert hist[ord("b")] == 1

    def test_only_prefix_counted(self):
        hist = byte_histogram(b"\x00\x00\xff\xff", 2)
        assert hist[0] == 2
        assert hist[255] == 0

    def test_accepts_ndarray_and_memoryview(self):
        arr = np.frombuffer(PROSE, dtype=np.uint8)
        expected = byte_histogram(PROSE)
        assert np.array_equal(byte_histogram(arr), expected)
        assert np.array_equal(byte_histogram(memoryview(PROSE)), expected)
        assert np.array_equal(byte_histogram(bytearray(PROSE)), expected)

    def test_empty(self):
        hist = byte_histogram(b"")
        assert hist.shape == (256,)
        assert hist.sum() == 0

    def test_wide_item_memoryview_counted_in_bytes(self):
        view = memoryview(array("H", [0x0102] * 2048))
        hist = byte_histogram(view)
        assert int(hist.sum()) == CHUNK_SIZE
        assert hist[1] == hist[2] == 2048
        assert chunk_statistic(view).length == CHUNK_SIZE

    def test_array_module_buffer(self):
        data = array("I", range(1024))
        assert np.array_equal(byte_histogram(data), byte_histogram(data.tobytes()))

    def test_strided_memoryview(self):
        view = memoryview(PROSE)[::2]
        assert np.array_equal(byte_histogram(view), byte_histogram(PROSE[::2]))

    def test_int_sequences_in_range(self):
        hist = byte_histogram([0, 255, 255])
        assert hist[0] == 1
        assert hist[255] == 2

    def test_out_of_range_values_rejected(self):
        with pytest.raises(ChunkError):
            byte_histogram(np.array([256, 512, 300]))
        with pytest.raises(ChunkError):
            byte_histogram([0, -1])
        with pytest.raises(ChunkError):
            byte_histogram(np.array([0.5, 1.0]))


class TestChiSquareSum:
    def test_uniform_is_zero(self):
        assert chunk_statistic(UNIFORM).chi_sq_sum == 0

    def test_single_value(self):
        s = chunk_statistic(SINGLE)
        assert s.chi_sq_sum == (4096 - 16) ** 2 + 255 * 16 ** 2 == 16711680
        assert isinstance(s.chi_sq_sum, int)

    def test_expected_count(self):
        assert expected_count(4096) == 16
        assert isinstance(expected_count(4096), int)
        assert expected_count(1000) == pytest.approx(3.90625)

    def test_fractional_expectation(self):
        e = 100 / 256
        s = chunk_statistic(bytes(100))
        assert isinstance(s.chi_sq_sum, float)
        assert s.chi_sq_sum == pytest.approx((100 - e) ** 2 + 255 * e ** 2)

    def test_rejects_wrong_shape(self):
        with pytest.raises(ValueError):
            chi_square_sum(np.zeros(10), 10)

    def test_grows_with_skew(self):
        mild = chunk_statistic(_paired([1] * 10)).chi_sq_sum
        strong = chunk_statistic(_paired([8] * 10)).chi_sq_sum
        assert 0 < mild < strong

    def test_normalized(self):
        assert chunk_statistic(SINGLE).normalized == pytest.approx(16711680 / 16)


class TestVerdict:
    def test_truthiness(self):
        assert Verdict.HIGH_ENTROPY
        assert not Verdict.STRUCTURED

    def test_uniform_is_high_entropy(self):
        assert classify(UNIFORM, CHUNK_SIZE) is Verdict.HIGH_ENTROPY

    def test_single_value_is_structured(self):
        assert classify(SINGLE, CHUNK_SIZE) is Verdict.STRUCTURED

    def test_threshold_is_strict(self):
        assert verdict_for(REFERENCE_THRESHOLD, REFERENCE_THRESHOLD) is Verdict.STRUCTURED
        assert verdict_for(REFERENCE_THRESHOLD - 1, REFERENCE_THRESHOLD) is Verdict.HIGH_ENTROPY

    def test_buffer_at_threshold_is_structured(self):
        data = _paired([16] * 19 + [10, 6])
        assert len(data) == CHUNK_SIZE
        assert chunk_statistic(data).chi_sq_sum == 10000
        assert classify(data) is Verdict.STRUCTURED

    def test_buffer_just_below_threshold_is_high_entropy(self):
        # Deviations sum to zero, so a 4096-byte sum is always even.
        data = _paired([16] * 19 + [11, 3, 2, 1])
        assert chunk_statistic(data).chi_sq_sum == 9998
        assert classify(data) is Verdict.HIGH_ENTROPY

    def test_deterministic(self):
        data = os.urandom(CHUNK_SIZE)
        assert classify(data) is classify(data)
        assert classify(PROSE) is classify(PROSE)

    def test_order_independent(self):
        rng = random.Random(1234)
        for data in (PROSE, _paired([16] * 19 + [10, 6]), os.urandom(CHUNK_SIZE)):
            shuffled = bytearray(data)
            rng.shuffle(shuffled)
            assert chunk_statistic(bytes(shuffled)).chi_sq_sum == chunk_statistic(data).chi_sq_sum
            assert classify(bytes(shuffled)) is classify(data)

    def test_prose_is_structured(self):
        assert classify(PROSE, CHUNK_SIZE) is Verdict.STRUCTURED

    def test_random_is_high_entropy(self):
        assert classify(os.urandom(CHUNK_SIZE), CHUNK_SIZE) is Verdict.HIGH_ENTROPY


class TestEdgeCases:
    def test_length_past_buffer_raises(self):
        with pytest.raises(BufferTooShortError):
            classify(b"\x00" * 100, CHUNK_SIZE)

    def test_errors_are_value_errors(self):
        assert issubclass(ChunkError, ValueError)
        with pytest.raises(ValueError):
            byte_histogram(b"abc", 4)

    def test_negative_length_raises(self):
        with pytest.raises(InvalidLengthError):
            classify(UNIFORM, -1)

    def test_prefix_of_longer_buffer(self):
        data = UNIFORM + SINGLE
        assert classify(data, CHUNK_SIZE) is Verdict.HIGH_ENTROPY
        assert classify(data) is Verdict.STRUCTURED

    def test_empty_module_level_classify(self):
        assert classify(b"", 0) is Verdict.HIGH_ENTROPY

    def test_empty_default_classifier(self):
        assert EntropyClassifier().classify(b"") is Verdict.STRUCTURED

    def test_empty_statistic(self):
        s = chunk_statistic(b"")
        assert s.chi_sq_sum == 0
        assert s.normalized == 0.0
        assert s.p_value is None


class TestEntropyClassifier:
    def test_defaults(self):
        clf = EntropyClassifier()
        assert clf.chunk_size == CHUNK_SIZE
        assert clf.threshold == REFERENCE_THRESHOLD
        assert clf.effective_threshold(CHUNK_SIZE) == 10000

    def test_normalized_default_threshold(self):
        clf = EntropyClassifier(normalized=True)
        assert clf.threshold == NORMALIZED_THRESHOLD == 625.0
        assert clf.effective_threshold(100) == 625.0

    def test_normalized_agrees_at_calibrated_size(self):
        raw = EntropyClassifier()
        norm = EntropyClassifier(normalized=True)
        buffers = [UNIFORM, SINGLE, PROSE, os.urandom(CHUNK_SIZE),
                   _paired([16] * 19 + [10, 6]), _paired([16] * 19 + [11, 3, 2, 1])]
        for data in buffers:
            assert raw.classify(data) is norm.classify(data)

    def test_threshold_scales_with_length(self):
        assert scaled_threshold(2048) == pytest.approx(5000.0)
        assert EntropyClassifier().effective_threshold(8192) == pytest.approx(20000.0)

    def test_smaller_chunk_size(self):
        clf = EntropyClassifier(chunk_size=1024)
        assert clf.threshold == pytest.approx(2500.0)
        assert clf.classify(os.urandom(1024)) is Verdict.HIGH_ENTROPY
        assert clf.classify(PROSE[:1024]) is Verdict.STRUCTURED

    def test_length_not_multiple_of_256(self):
        clf = EntropyClassifier(normalized=True)
        assert clf.classify(os.urandom(1000)) is Verdict.HIGH_ENTROPY
        assert clf.classify(PROSE[:1000]) is Verdict.STRUCTURED

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            EntropyClassifier(chunk_size=0)
        with pytest.raises(ValueError):
            EntropyClassifier(threshold=-5)
        with pytest.raises(ValueError):
            EntropyClassifier(threshold=float("nan"))
        with pytest.raises(ValueError):
            EntropyClassifier(threshold=float("inf"))

    def test_reference_preset(self):
        clf = EntropyClassifier.reference()
        assert clf.empty_verdict is None
        assert clf.classify(b"") is Verdict.HIGH_ENTROPY
        assert clf.classify(PROSE) is classify(PROSE)

    def test_judge_matches_classify(self):
        clf = EntropyClassifier()
        s = clf.measure(PROSE)
        assert clf.judge(s) is clf.classify(PROSE)

    def test_p_value(self):
        assert chunk_statistic(UNIFORM).p_value == pytest.approx(1.0)
        assert chunk_statistic(SINGLE).p_value < 1e-6

    def test_concurrent_calls(self):
        clf = EntropyClassifier()
        buffers = [os.urandom(CHUNK_SIZE) if i % 2 else PROSE for i in range(16)]
        expected = [clf.classify(b) for b in buffers]
        results = [None] * len(buffers)

        def _worker(i):
            results[i] = clf.classify(buffers[i])

        threads = [threading.Thread(target=_worker, args=(i,)) for i in range(len(buffers))]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results == expected
