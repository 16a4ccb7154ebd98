"""Sales Desk Agent: a conversational assistant for sales teams.

Architecture Overview
=====================

Every user message is one *turn*, processed by a **LangGraph** state
machine (``src/agent.py``):

1. **Fast paths**: deterministic regex extractors (``src/intents.py``)
   recognise credentials, CRM actions, list requests and documentation
   questions and call the matching tool without any LLM round-trip.

2. **Planning loop**: otherwise Claude is asked for a single JSON plan
   (``tool`` or ``respond``).  The plan is parsed leniently
   (``src/planning.py``), the tool is validated and executed, and the
   loop runs at most ``MAX_TOOL_ITERATIONS`` times.

Replies are streamed to the client as synthetic ``token`` events
(``src/streaming.py``) alongside trace events (``thought``, ``tool``,
``tool_result``, ``state``, ``error``).

Key Design Decisions
--------------------
- **Authentication**: invited users prove identity with name + passcode;
  only ``verify_passcode`` may set the session's user.
- **Persistence**: sessions, leads, notes and follow-ups live in Postgres,
  accessed through SQLAlchemy Core on an async engine.
- **Document search**: Ollama-compatible embeddings + pgvector nearest
  neighbours, filtered by a minimum similarity.
- **Resilience**: LLM and embedding calls have hard timeouts; a provider
  failure ends the turn with a canned reply and unparseable plans get one
  strict retry before a deterministic fallback.
- **Dual Interface**: FastAPI SSE server (production) + CLI chat loop
  (development/testing).

Package Structure
-----------------
- ``src/agent.py``: LangGraph StateGraph and ``Agent.run_turn``
- ``src/bootstrap.py``: builds the engine, clients and agent once
- ``src/config.py``: Centralized configuration from environment variables
- ``src/prompts.py``: Planning prompt with tool catalogue
- ``src/server.py``: FastAPI application
- ``src/main.py``: CLI chat interface
- ``src/services/``: Database, session store, LLM / embedding clients, metrics
- ``src/tools/``: Tool registry (auth, CRM, document search)
- ``src/api/``: FastAPI routes and Pydantic schemas
"""
