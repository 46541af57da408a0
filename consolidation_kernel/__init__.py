"""
Consolidation Kernel

Lowest layer of the multi-entity consolidation core:
- Typed exceptions with machine-readable codes
- Structured JSON logging
- Period arithmetic and immutable source-row snapshots
- ORM models and the read-only snapshot selector
"""

__version__ = "0.1.0"
