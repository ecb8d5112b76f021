"""Entry point for `python -m errorpulse`.

Runs the periodic rule evaluator until SIGTERM/SIGINT.

Usage:
    python -m errorpulse
"""

from __future__ import annotations

import asyncio

from errorpulse.app import main

asyncio.run(main())
