"""Range-vector functions, sliding sample buffers, series selectors and step operators for PromQL-style evaluation."""

__version__ = "0.1.0"

__all__ = [
    "annotations",
    "filter",
    "labels",
    "matrix_selector",
    "model",
    "options",
    "over_time",
    "range_functions",
    "rate_buffer",
    "ring_buffer",
    "samples",
    "selectors",
    "vector_selector",
]