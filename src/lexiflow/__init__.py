"""
Lexiflow - chat service with multi-step workflow orchestration.

Routes chat messages to model providers in one of two modes:

- default: the model's answer is streamed back directly
- workflow: the request is planned into ordered steps, each step runs with
  the results of the previous ones as context, and the final step is
  streamed back together with live progress frames

Quick Start:
    >>> from lexiflow.config.container import setup_container
    >>> from lexiflow.core.chat import ChatMode
    >>>
    >>> container = setup_container()
    >>> service = container.get("chat_service")
    >>> parts = await service.start(ChatMode.WORKFLOW, messages)
    >>> async for part in parts:
    ...     print(part)

API Server:
    $ lexiflow --port 8000
    # or
    $ uvicorn lexiflow.api.server:app --host 0.0.0.0 --port 8000

Configuration:
    Environment variables use the LEX_ prefix and __ for nesting:
    - LEX_PROVIDERS__OPENAI__API_KEY=sk-...
    - LEX_PROVIDERS__ANTHROPIC__API_KEY=sk-ant-...
    - LEX_RETRY__MAX_ATTEMPTS=5
    - LEX_WORKFLOW__MAX_DURATION_SECONDS=300
    - LEX_OBSERVABILITY__LOG_LEVEL=INFO
"""

__version__ = "1.0.0"

from .config.settings import Settings

__all__ = ["Settings", "__version__"]
