'''
Clinic Finance Backend Test Suite

Test Modules:
-------------
- test_normalization.py: Value parsers and raw-to-canonical field tables
- test_periods.py: Bucket alignment, sequences, default windows, labels
- test_aggregation.py: Aligned lengths, sum preservation, empty input
- test_metrics.py: Margin, trailing windows, mix, profitability, suggestions
- test_ingestion.py: Query service and snapshot strategies, fallback,
  canonical dataset construction, BigQuery executor
- test_api.py: Dashboard endpoints through FastAPI TestClient

Running Tests:
--------------
    pip install -e ".[test]"
    pytest -v

Configuration:
--------------
See conftest.py for shared fixtures and test configuration.
'''

__all__ = []
