"""
Test Package Initialization

This package contains all unit and integration tests for the
TravelBuddy project.

Test Structure:
- test_config.py: Configuration tests
- test_providers.py: Weather and LLM provider tests
- test_relay.py: Relay server tests
- test_events.py: Frame codec and event bus tests
- test_adapters.py: Speech, geolocation and conversation log tests
- test_clients.py: Channel and request client tests
- test_session.py: Session orchestrator tests
- test_api_server.py: FastAPI endpoint and websocket tests
- test_cli.py: Command line tests
- test_logger.py: Logging helper tests

Run tests with:
    pytest tests/ -v
    pytest tests/ -v --cov=travelbuddy
"""
