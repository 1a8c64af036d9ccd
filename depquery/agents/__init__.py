"""
Query Engine for depquery
=========================

FLOW OVERVIEW:
--------------
1. Caller asks a question about a repository
2. SessionGateway reuses or opens a remote session (seeded with a hidden
   system prompt)
3. The question is sent; the answer arrives either
   - live: LivenessSupervisor guards the event stream and
     StreamInterpreter turns it into incremental results, or
   - polled: FallbackPoller reads the latest messages until the answer
     shows up
4. QueryOrchestrator coordinates the flow and kicks off the background
   repository summary for fresh sessions

ARCHITECTURE:
-------------
    QueryOrchestrator
      ├── SessionGateway
      ├── LivenessSupervisor ──► StreamInterpreter
      └── FallbackPoller
              │
              ▼
    RemoteAgentService

USAGE:
------
    from depquery.agents import QueryOrchestrator
"""

from depquery.agents.base import (
    EventType,
    MessageRole,
    PartType,
    RemoteAgentService,
    SessionHandle,
)
from depquery.agents.liveness import LivenessConfig, LivenessSupervisor
from depquery.agents.orchestrator import OrchestratorConfig, QueryOrchestrator
from depquery.agents.poller import FallbackPoller, PollerConfig
from depquery.agents.session_gateway import SessionGateway
from depquery.agents.stream_interpreter import StreamInterpreter

__all__ = [
    "EventType",
    "MessageRole",
    "PartType",
    "RemoteAgentService",
    "SessionHandle",
    "LivenessConfig",
    "LivenessSupervisor",
    "OrchestratorConfig",
    "QueryOrchestrator",
    "FallbackPoller",
    "PollerConfig",
    "SessionGateway",
    "StreamInterpreter",
]
