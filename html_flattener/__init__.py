"""html-flattener.

A small build utility that bundles a multi-module browser app, its stylesheet,
an optional third-party library and a diagram into a single, offline-capable
``.html`` file that can re-export itself.
"""

__all__: list[str] = ["__version__"]

__version__: str = "0.1.0"
