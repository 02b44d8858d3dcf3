"""
Test Package
============

Unit and integration tests for the Android AI Agent.

Test organization:
    - test_agent.py: ReAct agent core tests
    - test_actions.py: Action handler tests
    - test_perception.py: UI parsing and element detection tests
    - test_api.py: FastAPI endpoint tests

Run tests with:
    pytest tests/ -v
    pytest tests/ -v --cov=app --cov-report=html
"""
