"""
OHIE package
============

This package contains the Outbreaks in Healthcare Institutions Engine (OHIE).

- Dataset loading is in `ohie/loader.py`.
- Field derivation (year, closed vocabularies) is in `ohie/derive.py`.
- Grouped counts and per-partition percentages are in `ohie/aggregate.py`.
- Descriptive statistics are in `ohie/summary.py`.
- The CLI entry point is in `ohie/cli.py`.
"""

__version__ = '0.1.0'
