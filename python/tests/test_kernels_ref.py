#!/usr/bin/env python3
"""
Scalar reference kernels and fixed-point helpers.
"""
import sys
import os
import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from qcnn.quant import wrap_i8, wrap_i32, shift_in_range
from qcnn.conv_ref import conv_int8
from qcnn.fc_ref import fc_int8
from qcnn.requant_ref import requantize_int8
from qcnn.pool_ref import maxpool2x2_u8
from qcnn.relu_ref import relu_i8_to_u8


class TestQuant:
    def test_wrap_is_truncation(self):
        np.testing.assert_array_equal(wrap_i8([127, 128, 200, -129]), [127, -128, -56, 127])
        assert wrap_i32(2**31).item() == -2**31
        print("  PASS: wrap")

    def test_shift_range(self):
        assert shift_in_range([0, 31])
        assert not shift_in_range([32])
        assert not shift_in_range([-1])


class TestConv:
    def test_ones_kernel_counts_neighbours(self):
        """All-ones 3x3 kernel over all-ones input counts in-bounds taps."""
        img = np.ones((1, 3, 3), dtype=np.uint8)
        w = np.ones((1, 1, 3, 3), dtype=np.int8)
        out = conv_int8(1, 1, 3, 3, w, img)
        np.testing.assert_array_equal(out[0], [[4, 6, 4], [6, 9, 6], [4, 6, 4]])
        assert out.dtype == np.int32
        print("  PASS: conv zero padding")

    def test_identity_and_negation(self):
        img = np.arange(1, 17, dtype=np.uint8).reshape(1, 4, 4)
        w = np.zeros((2, 1, 3, 3), dtype=np.int8)
        w[0, 0, 1, 1] = 1
        w[1, 0, 1, 1] = -1
        out = conv_int8(1, 2, 4, 4, w, img)
        np.testing.assert_array_equal(out[0], img[0])
        np.testing.assert_array_equal(out[1], -img[0].astype(np.int32))

    def test_multi_channel_sum(self):
        img = np.full((2, 2, 2), 10, dtype=np.uint8)
        w = np.zeros((1, 2, 3, 3), dtype=np.int8)
        w[0, 0, 1, 1] = 3
        w[0, 1, 1, 1] = -5
        out = conv_int8(2, 1, 2, 2, w, img)
        np.testing.assert_array_equal(out, np.full((1, 2, 2), -20))

    def test_writes_into_dst(self):
        img = np.full(4, 255, dtype=np.uint8)
        w = np.full(9, 127, dtype=np.int8)
        dst = np.zeros(4, dtype=np.int32)
        res = conv_int8(1, 1, 2, 2, w, img, dst=dst)
        assert res is dst
        np.testing.assert_array_equal(dst, np.full(4, 4 * 255 * 127))


class TestFC:
    def test_dot_product(self):
        x = np.array([1, 2, 3], dtype=np.uint8)
        w = np.array([[1, -1], [2, 0], [3, 1]], dtype=np.int8)  # (ci, co)
        out = fc_int8(3, 2, w, x)
        np.testing.assert_array_equal(out, [14, 2])

    def test_flattened_feature_map(self):
        x = np.arange(8, dtype=np.uint8).reshape(2, 2, 2)
        w = np.ones((8, 1), dtype=np.int8)
        assert fc_int8(8, 1, w, x)[0] == 28


class TestRequantize:
    def test_shift_zero_is_subtraction(self):
        acc = np.array([10, -10], dtype=np.int32)
        out = requantize_int8(2, 1, 1, [0, 0], [0, 0], acc)
        np.testing.assert_array_equal(out, [10, -10])
        assert out.dtype == np.int8
        print("  PASS: requantize shift 0")

    def test_arithmetic_shift(self):
        acc = np.array([-7, 7], dtype=np.int32)
        out = requantize_int8(2, 1, 1, [0, 0], [1, 1], acc)
        np.testing.assert_array_equal(out, [-4, 3])

    def test_per_channel_bias(self):
        acc = np.array([5, 5, 5, 5], dtype=np.int32)  # C=2, H=1, W=2
        out = requantize_int8(2, 1, 2, [1, -3], [2, 0], acc)
        np.testing.assert_array_equal(out, [1, 1, 8, 8])

    def test_narrowing_wraps(self):
        acc = np.array([200, 1000], dtype=np.int32)
        out = requantize_int8(2, 1, 1, [0, 0], [0, 2], acc)
        np.testing.assert_array_equal(out, [-56, -6])


class TestPool:
    def test_even_dims(self):
        img = np.arange(1, 17, dtype=np.uint8).reshape(1, 4, 4)
        out = maxpool2x2_u8(1, 4, 4, img)
        np.testing.assert_array_equal(out[0], [[6, 8], [14, 16]])
        print("  PASS: pool 4x4")

    def test_odd_dims_keep_column_zero(self):
        img = np.zeros((1, 3, 5), dtype=np.uint8)
        img[0, 0, 0] = 9
        img[0, 1, 3] = 7
        img[0, 2, 4] = 200  # dropped: last row and column have no window
        out = maxpool2x2_u8(1, 3, 5, img)
        np.testing.assert_array_equal(out, [[[9, 7]]])


class TestRelu:
    def test_clamps_negatives(self):
        x = np.array([-3, 0, 2, -1], dtype=np.int8)
        out = relu_i8_to_u8(1, 1, 4, x)
        np.testing.assert_array_equal(out.reshape(-1), [0, 0, 2, 0])
        assert out.dtype == np.uint8

    def test_does_not_mutate_input(self):
        x = np.array([-128, 127], dtype=np.int8)
        relu_i8_to_u8(1, 1, 2, x)
        np.testing.assert_array_equal(x, [-128, 127])
