"""Per-layer-type time accumulators."""
from collections import OrderedDict

from .layer_spec import LayerKind


class TimingStats:
    """Accumulated seconds and call counts per LayerKind. Reset is explicit."""

    def __init__(self, label):
        self.label = label
        self.reset()

    def reset(self):
        self.seconds = OrderedDict((kind, 0.0) for kind in LayerKind)
        self.calls = OrderedDict((kind, 0) for kind in LayerKind)

    def record(self, kind, seconds):
        self.seconds[kind] += seconds
        self.calls[kind] += 1

    @property
    def total(self):
        return sum(self.seconds.values())

    def report(self):
        """Print per-type totals and the grand total; returns them as a dict."""
        print(f"[timing] {self.label}:")
        totals = OrderedDict()
        for kind, sec in self.seconds.items():
            if self.calls[kind] == 0:
                continue
            totals[kind.value] = sec
            print(f"[timing]   {kind.keyword:<5s} {sec:12.6f} s  ({self.calls[kind]} calls)")
        totals["total"] = self.total
        print(f"[timing]   {'TOTAL':<5s} {self.total:12.6f} s")
        return totals
