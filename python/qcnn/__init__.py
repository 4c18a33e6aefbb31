"""Quantized CNN inference on a scalar and a numba-accelerated backend."""
from .engine import Backend, Engine, ExecutionMode, argmax
from .errors import (CompileError, ConfigParseError, ParityMismatchError,
                     PipelineShapeError, QCNNError, ResourceInitError,
                     UnknownLayerError)
from .layer_spec import LayerKind, LayerSpec, TensorDesc
from .model_parser import format_model, parse_model, parse_model_file, write_model_file
from .pipeline import Pipeline
from .timing import TimingStats

__all__ = [
    "Backend", "Engine", "ExecutionMode", "argmax",
    "CompileError", "ConfigParseError", "ParityMismatchError", "PipelineShapeError",
    "QCNNError", "ResourceInitError", "UnknownLayerError",
    "LayerKind", "LayerSpec", "TensorDesc",
    "format_model", "parse_model", "parse_model_file", "write_model_file",
    "Pipeline", "TimingStats",
]
