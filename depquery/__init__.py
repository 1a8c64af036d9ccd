"""
Dependency Query
================

Ask natural-language questions about a dependency's or project's source
tree and get answers from a remote AI coding-agent service, with the
conversation kept alive across follow-up questions.

Components:
- agents: Query orchestration engine (session gateway, stream interpreter,
  liveness supervisor, fallback poller, orchestrator)
- services: Remote agent HTTP client, repository resolution, summary store
- api: FastAPI endpoints
- models: Pydantic data models
- core: Configuration and dependencies
"""

__version__ = "1.0.0"
