"""
Top-level package for commit_weaver.

This package exposes the ``weaver`` CLI via :mod:`commit_weaver.cli`.
The engine lives in the sub-packages: ``diff`` and ``chunking`` split
changes into units, ``grouping`` partitions them, ``apply`` commits the
plans and ``watch`` drives everything unattended.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
