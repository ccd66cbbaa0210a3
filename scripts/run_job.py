#!/usr/bin/env python3
"""
Run a job from a YAML definition file without installing the package.

Usage:
    python3 scripts/run_job.py --config scripts/people_job.yaml --job importUserJob

See ``stepline_batch.cli`` for all options and exit codes.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from stepline_batch.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
