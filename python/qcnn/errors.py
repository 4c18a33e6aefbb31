"""Error taxonomy for model loading, device setup and backend verification."""


class QCNNError(Exception):
    """Base class for every error raised by qcnn."""


class ConfigParseError(QCNNError, ValueError):
    """Malformed, truncated or out-of-range model description."""


class UnknownLayerError(ConfigParseError):
    """A model record starts with a keyword that names no layer."""

    def __init__(self, keyword, position=None):
        self.keyword = keyword
        self.position = position
        where = f" (token {position})" if position is not None else ""
        super().__init__(f"No such layer: {keyword}{where}")


class PipelineShapeError(ConfigParseError):
    """Adjacent layers disagree on the tensor passed between them."""


class ResourceInitError(QCNNError, RuntimeError):
    """Context, queue, buffer or kernel creation failed."""


class CompileError(QCNNError, RuntimeError):
    """The accelerator kernel source failed to build."""

    def __init__(self, message, build_log=""):
        self.build_log = build_log
        super().__init__(message)

    def __str__(self):
        msg = super().__str__()
        if self.build_log:
            return f"{msg}\n--- build log ---\n{self.build_log}"
        return msg


class ParityMismatchError(QCNNError):
    """Scalar and accelerated outputs of one layer differ.

    Never raised by the engine: instances are recorded as diagnostics.
    """

    def __init__(self, layer_index, kind, index, scalar_value, accelerated_value, count=1):
        self.layer_index = layer_index
        self.kind = kind
        self.index = index
        self.scalar_value = scalar_value
        self.accelerated_value = accelerated_value
        self.count = count
        super().__init__(
            f"layer {layer_index} ({kind}): {count} mismatching element(s), "
            f"first at {index}: scalar={scalar_value} accelerated={accelerated_value}")
