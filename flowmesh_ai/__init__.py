"""FlowMesh-AI.

This package contains the agent execution engine used by FlowMesh-AI to run a
user-designed agent graph against one or more LLM providers and stream every
intermediate event back to the caller.

High-level architecture
-----------------------

The codebase is organized around one ordered event stream per execution:

- **Graph execution**: an agent is a directed graph of typed nodes (input,
  model, conditional, string formatter, output). Nodes run as soon as their
  inputs have completed, concurrently when they do not depend on each other.
- **Chat turns**: model nodes drive a tool-calling loop against a provider
  (OpenAI, Anthropic, Gemini). Provider output is republished fragment by
  fragment, tool calls are resolved through a per-user tool registry.

Core subpackages
----------------

- ``flowmesh_ai.core``: settings, logging configuration and logfire
  monitoring.
- ``flowmesh_ai.agent_core``:

  - Wire schemas (stream items, node results, graph definitions).
  - The ``StreamBus`` event channel.
  - Provider clients normalising vendor SSE streams.
  - The tool registry with built-in and OAuth-backed tools.
  - The chat orchestrator and the agent graph executor.
  - Repository interfaces for persisting completed executions.

Typical workflow
----------------

Most integrations should use ``flowmesh_ai.agent_core.service.AgentExecutionService``:

1. Describe the agent as an ``AgentDefinition``.
2. Call ``execute`` with the conversation messages.
3. Iterate the returned stream items until it ends.
"""
