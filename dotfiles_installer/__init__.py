"""Dotfiles installer (Python-first, convergence-driven).

Core design goals:
- Probe, then plan only what is missing
- Idempotent actions; re-running resumes after a failure
- Ordering declared as data
- Never destroy user files (conflicts are backed up)
- Centralized logging
"""

__all__ = []
