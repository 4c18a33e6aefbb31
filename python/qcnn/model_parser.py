"""
Model description reader / writer.

Format: whitespace-delimited tokens, one layer record after another:

  CONV CO <co> CI <ci> H <h> W <w>   then CO*CI*3*3 weights (co, ci, kh, kw)
  FC   CI <ci> CO <co>               then CI*CO weights (ci, co)
  RELU C <c> H <h> W <w>
  POOL C <c> H <h> W <w>
  QUAN C <c> H <h> W <w> BIAS <c ints> SHIFT <c ints>

Weights are cast to int8, biases to int32; shifts must lie in [0, 31].
'#' starts a comment that runs to the end of the line.
"""
import numpy as np

from .errors import ConfigParseError, UnknownLayerError
from .layer_spec import LayerKind, LayerSpec


def parse_int(s):
    """Parse integer from string (supports hex 0x prefix)."""
    s = s.strip()
    if s.lower().startswith(("0x", "-0x")):
        return int(s, 16)
    return int(s)


class _Tokens:
    """Cursor over the token stream with position-aware errors."""

    def __init__(self, text):
        self.toks = []
        for line in text.splitlines():
            self.toks.extend(line.split('#')[0].split())
        self.pos = 0

    def done(self):
        return self.pos >= len(self.toks)

    def next(self, what):
        if self.done():
            raise ConfigParseError(f"unexpected end of model while reading {what}")
        tok = self.toks[self.pos]
        self.pos += 1
        return tok

    def expect(self, keyword):
        tok = self.next(keyword)
        if tok != keyword:
            raise ConfigParseError(f"expected '{keyword}' at token {self.pos - 1}, got '{tok}'")

    def int(self, what):
        tok = self.next(what)
        try:
            return parse_int(tok)
        except ValueError:
            raise ConfigParseError(
                f"expected an integer for {what} at token {self.pos - 1}, got '{tok}'") from None

    def ints(self, n, what):
        return np.array([self.int(what) for _ in range(n)], dtype=np.int64)

    def dims(self, *names):
        out = []
        for name in names:
            self.expect(name)
            out.append(self.int(name))
        return out


def _parse_conv(t):
    co, ci, h, w = t.dims("CO", "CI", "H", "W")
    _check_positive("CONV", co=co, ci=ci, h=h, w=w)
    weight = t.ints(co * ci * 9, "CONV weight")
    return LayerSpec.conv(ci, co, h, w, weight.astype(np.int8))

def _parse_fc(t):
    ci, co = t.dims("CI", "CO")
    _check_positive("FC", ci=ci, co=co)
    weight = t.ints(ci * co, "FC weight")
    return LayerSpec.fc(ci, co, weight.astype(np.int8))

def _parse_relu(t):
    c, h, w = t.dims("C", "H", "W")
    return LayerSpec.rectify(c, h, w)

def _parse_pool(t):
    c, h, w = t.dims("C", "H", "W")
    return LayerSpec.pool(c, h, w)

def _parse_quan(t):
    c, h, w = t.dims("C", "H", "W")
    _check_positive("QUAN", c=c, h=h, w=w)
    t.expect("BIAS")
    bias = t.ints(c, "QUAN bias")
    t.expect("SHIFT")
    shift = t.ints(c, "QUAN shift")
    return LayerSpec.requantize(c, h, w, bias.astype(np.int32), shift)


_RECORDS = {
    LayerKind.CONV.keyword: _parse_conv,
    LayerKind.FC.keyword: _parse_fc,
    LayerKind.RECTIFY.keyword: _parse_relu,
    LayerKind.POOL.keyword: _parse_pool,
    LayerKind.REQUANTIZE.keyword: _parse_quan,
}


def _check_positive(name, **dims):
    bad = {k: v for k, v in dims.items() if v <= 0}
    if bad:
        raise ConfigParseError(f"{name}: dimensions must be positive, got {bad}")


def parse_model(text):
    """Parse a model description into a list of LayerSpec, in declaration order."""
    t = _Tokens(text)
    specs = []
    while not t.done():
        start = t.pos
        keyword = t.next("layer keyword")
        record = _RECORDS.get(keyword)
        if record is None:
            raise UnknownLayerError(keyword, start)
        specs.append(record(t))
    return specs


def parse_model_file(path):
    try:
        with open(path, 'r') as f:
            text = f.read()
    except OSError as e:
        raise ConfigParseError(f"cannot read model file {path}: {e}") from e
    return parse_model(text)


def format_model(specs):
    """Write specs back out in the model description format."""
    lines = []
    for s in specs:
        if s.kind is LayerKind.CONV:
            lines.append(f"CONV CO {s.out_channels} CI {s.channels} H {s.height} W {s.width}")
            w = s.weight.reshape(s.out_channels * s.channels, 9)
            lines.extend(" ".join(str(int(v)) for v in row) for row in w)
        elif s.kind is LayerKind.FC:
            lines.append(f"FC CI {s.channels} CO {s.out_channels}")
            w = s.weight.reshape(s.channels, s.out_channels)
            lines.extend(" ".join(str(int(v)) for v in row) for row in w)
        elif s.kind is LayerKind.REQUANTIZE:
            lines.append(f"QUAN C {s.channels} H {s.height} W {s.width}")
            lines.append("BIAS " + " ".join(str(int(v)) for v in s.bias))
            lines.append("SHIFT " + " ".join(str(int(v)) for v in s.shift))
        else:
            lines.append(f"{s.kind.keyword} C {s.channels} H {s.height} W {s.width}")
    return "\n".join(lines) + "\n"


def write_model_file(path, specs):
    with open(path, 'w') as f:
        f.write(format_model(specs))
