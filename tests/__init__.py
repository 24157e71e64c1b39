"""
threadwatch test suite.

Test Organization:
- backend/utils/: error hierarchy and CycleReport, logging, reader/writer lock
- test_storage.py: dedup/cursor store implementations and registry
- test_feed.py, test_scraper.py: source adapters
- test_keywords.py, test_classifier.py: keyword and classifier stages
- test_pipeline.py: filter pipeline and comment eligibility gate
- test_notifier.py: message templates and notification channels
- test_config.py: engine configuration and process settings
- test_monitor.py: crawl orchestrator, pagination walk, scheduling loop
- test_api.py: admin HTTP surface
- test_main.py: command line

Run all tests:
    python -m pytest tests/ -v
"""
