from __future__ import annotations
import threading
import time
from collections import defaultdict
from typing import Callable, Dict, Iterable, Optional, Tuple

_LabelKey = Tuple[Tuple[str, str], ...]


def _label_key(labels: Optional[Dict[str, str]]) -> _LabelKey:
    return tuple(sorted((labels or {}).items()))


def _label_str(key: _LabelKey) -> str:
    return ",".join(f'{k}="{v}"' for k, v in key)


# ---------- Primitives ----------

class _Counter:
    def __init__(self, name: str, help_: str = ""):
        self.name = name
        self.help = help_
        self._lock = threading.Lock()
        self._values: Dict[_LabelKey, int] = defaultdict(int)

    def inc(self, labels: Optional[Dict[str, str]] = None, by: int = 1) -> None:
        key = _label_key(labels)
        with self._lock:
            self._values[key] += by

    def value(self, labels: Optional[Dict[str, str]] = None) -> int:
        with self._lock:
            return self._values.get(_label_key(labels), 0)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def render(self) -> Iterable[str]:
        if self.help:
            yield f"# HELP {self.name} {self.help}\n# TYPE {self.name} counter\n"
        for labels, v in sorted(self._values.items()):
            if labels:
                yield f"{self.name}{{{_label_str(labels)}}} {v}\n"
            else:
                yield f"{self.name} {v}\n"


class _Gauge:
    def __init__(self, name: str, help_: str = ""):
        self.name = name
        self.help = help_
        self._lock = threading.Lock()
        self._values: Dict[_LabelKey, float] = defaultdict(float)

    def set(self, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        key = _label_key(labels)
        with self._lock:
            self._values[key] = value

    def inc(self, labels: Optional[Dict[str, str]] = None, by: float = 1.0) -> None:
        key = _label_key(labels)
        with self._lock:
            self._values[key] += by

    def dec(self, labels: Optional[Dict[str, str]] = None, by: float = 1.0) -> None:
        self.inc(labels=labels, by=-by)

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._values.get(_label_key(labels), 0.0)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def render(self) -> Iterable[str]:
        if self.help:
            yield f"# HELP {self.name} {self.help}\n# TYPE {self.name} gauge\n"
        for labels, v in sorted(self._values.items()):
            if labels:
                yield f"{self.name}{{{_label_str(labels)}}} {v}\n"
            else:
                yield f"{self.name} {v}\n"


class _Histogram:
    DEFAULT_BUCKETS = [0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10]  # seconds

    def __init__(self, name: str, help_: str = "", buckets: Optional[Iterable[float]] = None):
        self.name = name
        self.help = help_
        self._lock = threading.Lock()
        self._buckets = list(buckets or self.DEFAULT_BUCKETS)
        self._counts: Dict[_LabelKey, Dict[float, float]] = defaultdict(lambda: defaultdict(float))
        self._sum: Dict[_LabelKey, float] = defaultdict(float)
        self._obs: Dict[_LabelKey, float] = defaultdict(float)

    def observe(self, value_seconds: float, labels: Optional[Dict[str, str]] = None) -> None:
        key = _label_key(labels)
        with self._lock:
            self._sum[key] += value_seconds
            self._obs[key] += 1
            # first bucket that fits; render() accumulates
            for b in self._buckets:
                if value_seconds <= b + 1e-12:
                    self._counts[key][b] += 1
                    break
            else:
                self._counts[key][float("inf")] += 1

    def timer(self, labels: Optional[Dict[str, str]] = None) -> Callable[[], None]:
        start = time.perf_counter()

        def _stop() -> None:
            self.observe(time.perf_counter() - start, labels=labels)

        return _stop

    def count(self, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._obs.get(_label_key(labels), 0.0)

    def clear(self) -> None:
        with self._lock:
            self._counts.clear()
            self._sum.clear()
            self._obs.clear()

    def render(self) -> Iterable[str]:
        if self.help:
            yield f"# HELP {self.name} {self.help}\n# TYPE {self.name} histogram\n"
        for key in sorted(set(self._obs.keys())):
            counts = self._counts.get(key, {})
            label_str = _label_str(key)
            running = 0.0
            for b in self._buckets + [float("inf")]:
                running += counts.get(b, 0.0)
                le = "+Inf" if b == float("inf") else f"{b:.2f}"
                if label_str:
                    yield f'{self.name}_bucket{{{label_str},le="{le}"}} {running}\n'
                else:
                    yield f'{self.name}_bucket{{le="{le}"}} {running}\n'
            sum_ = self._sum.get(key, 0.0)
            cnt_ = self._obs.get(key, 0.0)
            if label_str:
                yield f"{self.name}_sum{{{label_str}}} {sum_}\n"
                yield f"{self.name}_count{{{label_str}}} {cnt_}\n"
            else:
                yield f"{self.name}_sum {sum_}\n"
                yield f"{self.name}_count {cnt_}\n"


# ---------- Registry ----------

class MetricsRegistry:
    def __init__(self):
        self._items: list = []

    def counter(self, name: str, help_: str = "") -> _Counter:
        c = _Counter(name, help_)
        self._items.append(c)
        return c

    def gauge(self, name: str, help_: str = "") -> _Gauge:
        g = _Gauge(name, help_)
        self._items.append(g)
        return g

    def histogram(self, name: str, help_: str = "", buckets: Optional[Iterable[float]] = None) -> _Histogram:
        h = _Histogram(name, help_, buckets=buckets)
        self._items.append(h)
        return h

    def render_prometheus(self) -> str:
        out: list[str] = []
        for it in self._items:
            out.extend(it.render())
        return "".join(out)

    def reset(self) -> None:
        """Zero every registered metric; the metric objects stay registered."""
        for it in self._items:
            it.clear()


REGISTRY = MetricsRegistry()

# ---------- Cart metrics ----------

cart_mutations = REGISTRY.counter(
    "storefront_cart_mutations_total", "Cart operations by op and result (applied|noop|rejected)"
)
cart_persist = REGISTRY.counter(
    "storefront_cart_persist_total", "Local snapshot reads/writes by action and result"
)
cart_sync = REGISTRY.counter(
    "storefront_cart_sync_total", "Remote cart pull/push attempts by direction and result"
)
cart_sync_duration = REGISTRY.histogram(
    "storefront_cart_sync_duration_seconds", "Remote cart request duration in seconds"
)
cart_sync_inflight = REGISTRY.gauge(
    "storefront_cart_sync_inflight", "Remote cart requests currently in flight"
)
