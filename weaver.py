#!/usr/bin/env python
"""
Thin wrapper script to invoke the commit_weaver CLI.

Running ``python weaver.py`` is equivalent to running the ``weaver``
console script installed via ``pyproject.toml``.
"""

from commit_weaver.cli import main


if __name__ == "__main__":
    main(prog_name="weaver")
