"""
Test Suite Configuration
"""
import pytest
from datetime import date, datetime, timezone
from typing import Any, Dict, List

from sales_analytics.config import AnalyticsSettings, Settings


NOW = datetime(2025, 1, 31, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def analytics_settings() -> AnalyticsSettings:
    """Analytics thresholds with explicit defaults, independent of the environment"""
    return AnalyticsSettings(
        dependency_risk_threshold_percent=60.0,
        dependency_top_n=3,
        drain_window_days=7,
        drain_critical_days=7,
        drain_low_days=30,
        inventory_old_days=90,
        inventory_moderate_days=30,
        trend_days=30,
        timezone="UTC",
    )


@pytest.fixture
def now() -> datetime:
    """Fixed reference instant"""
    return NOW


@pytest.fixture
def january() -> tuple:
    """Window dates covering January 2025"""
    return date(2025, 1, 1), date(2025, 1, 31)


@pytest.fixture
def sample_products() -> List[Dict[str, Any]]:
    """Create sample catalog for testing"""
    return [
        {
            "id": "p1",
            "name": "Basmati Rice 5kg",
            "brand": "Tilda",
            "category": "Grocery",
            "sku": "RICE-5",
            "costPrice": 60,
            "sellingPrice": 100,
            "quantity": 50,
            "createdAt": "2024-09-01T00:00:00Z",
        },
        {
            "id": "p2",
            "name": "Himalayan Pink Salt 1kg",
            "brand": "Saltworks",
            "category": "Grocery",
            "sku": "SALT-1",
            "costPrice": "20",
            "sellingPrice": "35",
            "quantity": 0,
            "createdAt": "2025-01-10T00:00:00Z",
        },
        {
            "id": "p3",
            "name": "Olive Oil 1L",
            "brand": "Figaro",
            "category": "Oils",
            "sku": "OIL-1",
            "costPrice": 300,
            "sellingPrice": 450,
            "quantity": 20,
            "createdAt": "2024-12-01T00:00:00Z",
        },
    ]


@pytest.fixture
def sample_orders() -> List[Dict[str, Any]]:
    """Create sample order feed for testing"""
    return [
        {
            "id": "o1",
            "status": "DELIVERED",
            "retailerId": "r1",
            "retailerBusinessName": "Sharma Stores",
            "retailerState": "Maharashtra",
            "retailerCity": "Pune",
            "timestamp": "2025-01-29T10:00:00Z",
            "items": [
                {"productId": "p1", "productName": "Basmati Rice 5kg", "quantity": 7, "sellingPrice": 100},
                {"sku": "oil-1", "productName": "Olive Oil", "quantity": "2", "sellingPrice": 450},
            ],
        },
        {
            "id": "o2",
            "statusCode": "invoiced",
            "provisionalRetailerId": "r2",
            "retailerName": "Corner Mart",
            "state": "Karnataka",
            "city": "Bengaluru",
            "createdAt": {"seconds": 1736935200, "nanoseconds": 0},  # 2025-01-15T10:00:00Z
            "items": [
                {"name": "Basmati Rice 5kg", "brand": "Tilda", "qty": 3, "price": "₹100"},
                {"productName": "Salt", "quantity": 10, "sellingPrice": 35},
            ],
        },
        {
            "id": "o3",
            "status": "Pending",
            "retailerId": "r1",
            "timestamp": "2025-01-20T08:00:00Z",
            "items": [
                {"productId": "p1", "quantity": 100, "sellingPrice": 100},
            ],
        },
        {
            "id": "o4",
            "status": "Delivered",
            "retailerId": "r3",
            "retailerBusinessName": "Fresh Basket",
            "timestamp": "2024-12-15T08:00:00Z",
            "items": [
                {"productId": "p3", "quantity": 1, "sellingPrice": 450},
            ],
        },
        {
            "id": "o5",
            "status": "delivered",
            "retailerId": "r1",
            "retailerBusinessName": "Sharma Stores",
            "timestamp": 1737540000000,  # 2025-01-22T10:00:00Z in milliseconds
            "items": [
                {"productName": "Mystery Snack", "brand": "NoName", "quantity": 5, "sellingPrice": 20, "costPrice": 12},
            ],
        },
    ]
