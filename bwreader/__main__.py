"""Entry point for `python -m bwreader`.

Usage:
    python -m bwreader
"""

from __future__ import annotations

import asyncio

from bwreader.app import main

asyncio.run(main())
