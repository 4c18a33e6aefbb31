"""Ordered, immutable sequence of layers built from parsed layer specs."""
from .errors import ConfigParseError, PipelineShapeError
from .layers import Layer


class Pipeline:
    """Layers in declaration order; output of layer i feeds layer i+1."""

    def __init__(self, layers):
        self._layers = tuple(layers)

    @staticmethod
    def validate(specs, input_desc=None):
        """Check that consecutive specs chain (shape and element type).

        input_desc, when given, must be accepted by the first layer.
        Raises PipelineShapeError / ConfigParseError; allocates nothing.
        """
        specs = list(specs)
        if not specs:
            raise ConfigParseError("model declares no layers")
        for spec in specs:
            spec.validate()
        if input_desc is not None and not specs[0].accepts(input_desc):
            raise PipelineShapeError(
                f"layer 0 {specs[0]} does not accept the input {input_desc}")
        for i in range(1, len(specs)):
            produced = specs[i - 1].output_desc
            if not specs[i].accepts(produced):
                raise PipelineShapeError(
                    f"layer {i - 1} {specs[i - 1]} produces {produced}, "
                    f"but layer {i} {specs[i]} expects {specs[i].input_desc}")
        return specs

    @classmethod
    def build(cls, specs, context, input_desc=None):
        """Validate `specs`, then create one Layer per spec.

        If any layer fails to build, the ones already built are released.
        """
        specs = cls.validate(specs, input_desc)
        layers = []
        try:
            for i, spec in enumerate(specs):
                layers.append(Layer(spec, context, index=i))
        except Exception:
            for layer in reversed(layers):
                layer.release()
            raise
        return cls(layers)

    @property
    def layers(self):
        return self._layers

    @property
    def input_desc(self):
        return self._layers[0].input_desc

    @property
    def output_desc(self):
        return self._layers[-1].output_desc

    def __len__(self):
        return len(self._layers)

    def __iter__(self):
        return iter(self._layers)

    def __getitem__(self, i):
        return self._layers[i]

    def describe(self):
        for layer in self._layers:
            print(f"[pipeline] {layer.index:2d}: {layer.spec} -> {layer.output_desc} "
                  f"work={layer.work_size}")

    def release(self):
        for layer in reversed(self._layers):
            layer.release()
