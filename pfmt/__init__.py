"""
PFMT Data Layer - Source Package

The relational data-access and schema-migration layer behind the
project/financial tracking application.

DESIGN PRINCIPLES:
1. One JSON document is the system of record
2. Every mutation happens inside one critical section
3. Fail early, fail visibly
4. Migration never leaves the store half-migrated
5. Storage layer is swappable
"""

__version__ = "2.0.0"
__author__ = "PFMT Team"
