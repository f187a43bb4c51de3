"""
Extractor Module Entry Point

Allows execution via: python -m apps.extractor

Delegates to scheduler for all execution modes (scheduled and RUN_ONCE).
"""

from apps.extractor.scheduler import cli

if __name__ == "__main__":
    cli()
