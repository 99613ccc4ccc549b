"""
Malleus Load/Chaos Engine

Concurrent load and chaos testing for a video-conferencing backend:
- Many synthetic participants per conference, many conferences per run
- Per-session connectivity health monitoring with a failure tolerance
- Mid-run disruption of a bounded share of the media bridges
- Barrier-synchronized teardown and a per-conference pass/fail verdict
"""

__version__ = "1.0.0"
__author__ = "Malleus Development Team"

from malleus_engine.config import Settings, get_settings

__all__ = ["__version__", "Settings", "get_settings"]
