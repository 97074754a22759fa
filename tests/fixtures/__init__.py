"""
Pytest fixtures for the RetryRotor test suite.

Fixtures are organized by concern:
- determinism: environment isolation, global-state resets, seeded randomness
- http_mocking: scripted HTTPX MockTransport and retrying client factories
"""
