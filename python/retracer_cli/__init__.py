"""
retracer CLI package.

Front-ends over the ``retracer`` toolkit: a one-shot command line run and an
interactive prompt.  Use ``python -m python.retracer_cli`` or the
``retracer`` console script to launch it.
"""

from __future__ import annotations

from .cli import main

__all__ = ["main"]
__version__ = "0.1.0"
