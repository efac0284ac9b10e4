"""Input quality checks for catalog and order snapshots"""

from .validators import (
    DataValidator,
    ValidationCheck,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
    catalog_frame,
    create_catalog_validator,
    create_orders_validator,
    orders_frame,
    validate_catalog,
    validate_orders,
)

__all__ = [
    "DataValidator",
    "ValidationCheck",
    "ValidationResult",
    "ValidationSeverity",
    "ValidationStatus",
    "catalog_frame",
    "create_catalog_validator",
    "create_orders_validator",
    "orders_frame",
    "validate_catalog",
    "validate_orders",
]
