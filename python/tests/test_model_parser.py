#!/usr/bin/env python3
"""
Model description parsing, writing and build-time validation.
"""
import sys
import os
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from qcnn.errors import ConfigParseError, PipelineShapeError, UnknownLayerError
from qcnn.layer_spec import LayerKind, LayerSpec, TensorDesc
from qcnn.model_parser import format_model, parse_model, parse_model_file, write_model_file
from qcnn.pipeline import Pipeline

SMALL_MODEL = """
# conv -> requant -> relu -> pool -> fc -> requant
CONV CO 2 CI 1 H 4 W 4
0 0 0  0 1 0  0 0 0
0 0 0  0 -1 0  0 0 0
QUAN C 2 H 4 W 4 BIAS 0 0 SHIFT 0 0
RELU C 2 H 4 W 4
POOL C 2 H 4 W 4
FC CI 8 CO 3
1 0 0
0 0 0
0 0 1
0 1 0
0 0 0
0 0 0
0 0 0
0 0 0
QUAN C 3 H 1 W 1 BIAS 0 2 -2 SHIFT 1 1 1
"""


class TestParse:
    def test_small_model(self):
        specs = parse_model(SMALL_MODEL)
        kinds = [s.kind for s in specs]
        assert kinds == [LayerKind.CONV, LayerKind.REQUANTIZE, LayerKind.RECTIFY,
                         LayerKind.POOL, LayerKind.FC, LayerKind.REQUANTIZE]
        conv = specs[0]
        assert (conv.channels, conv.out_channels, conv.height, conv.width) == (1, 2, 4, 4)
        assert conv.weight.dtype == np.int8 and conv.weight.size == 18
        assert conv.weight[4] == 1 and conv.weight[13] == -1
        quan = specs[-1]
        np.testing.assert_array_equal(quan.bias, [0, 2, -2])
        assert quan.bias.dtype == np.int32
        np.testing.assert_array_equal(quan.shift, [1, 1, 1])
        assert quan.shift.dtype == np.uint8
        print("  PASS: parse small model")

    def test_weights_cast_to_int8(self):
        specs = parse_model("FC CI 1 CO 2  200 -129")
        np.testing.assert_array_equal(specs[0].weight, [-56, 127])

    def test_hex_values(self):
        specs = parse_model("QUAN C 1 H 1 W 1 BIAS 0x10 SHIFT 0x1")
        assert specs[0].bias[0] == 16 and specs[0].shift[0] == 1

    def test_unknown_keyword(self):
        with pytest.raises(UnknownLayerError) as ei:
            parse_model("RELU C 1 H 2 W 2\nSOFTMAX C 1")
        assert ei.value.keyword == "SOFTMAX"
        assert ei.value.position == 7
        assert "No such layer: SOFTMAX" in str(ei.value)

    def test_truncated_weights(self):
        with pytest.raises(ConfigParseError, match="end of model"):
            parse_model("CONV CO 1 CI 1 H 2 W 2  1 2 3")

    def test_bad_field_name(self):
        with pytest.raises(ConfigParseError, match="expected 'H'"):
            parse_model("POOL C 1 X 2 W 2")

    def test_non_integer(self):
        with pytest.raises(ConfigParseError, match="integer"):
            parse_model("RELU C one H 2 W 2")

    @pytest.mark.parametrize("shift", ["32", "-1", "255"])
    def test_shift_out_of_range(self, shift):
        with pytest.raises(ConfigParseError, match="shift"):
            parse_model(f"QUAN C 1 H 1 W 1 BIAS 0 SHIFT {shift}")

    def test_non_positive_dims(self):
        with pytest.raises(ConfigParseError, match="positive"):
            parse_model("RELU C 0 H 2 W 2")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigParseError, match="cannot read"):
            parse_model_file(str(tmp_path / "nope.txt"))


class TestFormat:
    def test_write_then_parse_preserves_layers(self, tmp_path):
        specs = parse_model(SMALL_MODEL)
        path = str(tmp_path / "model.txt")
        write_model_file(path, specs)
        again = parse_model_file(path)
        assert again == specs
        for a, b in zip(specs, again):
            for name in ("weight", "bias", "shift"):
                if getattr(a, name) is not None:
                    np.testing.assert_array_equal(getattr(a, name), getattr(b, name))

    def test_format_layout(self):
        text = format_model([LayerSpec.pool(1, 2, 2)])
        assert text == "POOL C 1 H 2 W 2\n"


class TestValidate:
    def test_chain_ok(self):
        specs = parse_model(SMALL_MODEL)
        Pipeline.validate(specs, TensorDesc(1, 4, 4, np.uint8))

    def test_empty_model(self):
        with pytest.raises(ConfigParseError):
            Pipeline.validate(parse_model("# nothing\n"))

    def test_shape_mismatch(self):
        specs = [LayerSpec.requantize(1, 4, 4, [0], [0]),
                 LayerSpec.rectify(1, 4, 4),
                 LayerSpec.pool(1, 4, 2)]
        with pytest.raises(PipelineShapeError, match="layer 2"):
            Pipeline.validate(specs)

    def test_element_type_mismatch(self):
        # CONV produces int32; RELU wants int8
        specs = [LayerSpec.conv(1, 1, 2, 2, np.zeros(9)), LayerSpec.rectify(1, 2, 2)]
        with pytest.raises(PipelineShapeError):
            Pipeline.validate(specs)

    def test_fc_takes_flattened_input(self):
        specs = [LayerSpec.pool(2, 4, 4), LayerSpec.fc(8, 1, np.zeros(8))]
        Pipeline.validate(specs, TensorDesc(2, 4, 4, np.uint8))
        bad = [LayerSpec.pool(2, 4, 4), LayerSpec.fc(9, 1, np.zeros(9))]
        with pytest.raises(PipelineShapeError):
            Pipeline.validate(bad)

    def test_input_rejected(self):
        with pytest.raises(PipelineShapeError, match="layer 0"):
            Pipeline.validate([LayerSpec.pool(1, 4, 4)], TensorDesc(1, 28, 28, np.uint8))

    def test_pool_needs_a_window(self):
        with pytest.raises(ConfigParseError):
            LayerSpec.pool(1, 1, 4)
