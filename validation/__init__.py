"""Data validation and provenance tracking for the OKP forecast evaluation.

This package provides the checks every input passes before fitting:
- Quarterly grid validation of the target series
- Regressor alignment against the target index
- Data fingerprinting with SHA-256 hashing
"""

from .data_integrity import (
    DataIntegrityError,
    DataFingerprint,
    validate_quarterly_series,
    validate_regressors,
    create_data_fingerprint
)

__all__ = [
    'DataIntegrityError',
    'DataFingerprint',
    'validate_quarterly_series',
    'validate_regressors',
    'create_data_fingerprint'
]

# Version info
__version__ = '1.0.0'
