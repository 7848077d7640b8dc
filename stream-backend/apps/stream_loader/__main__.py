"""
Stream Loader Module Entry Point

Allows execution via: python -m apps.stream_loader

Delegates to scheduler for all execution modes (scheduled and RUN_ONCE).
"""

import asyncio

from apps.stream_loader.scheduler import main

if __name__ == "__main__":
    asyncio.run(main())
