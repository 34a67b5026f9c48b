"""Agent module: pipeline lifecycle and periodic jobs.

This module wires the complete system:
1. Upstream feed transports (httpx, curl fallback) and the StockTwits client
2. PostgreSQL stores and host-application collaborators
3. Ingestion, synthesis, event calendar and batch orchestrator
4. APScheduler jobs (pre-market batch, post/watcher sync, cleanup)

Usage:
    python -m socialpulse.agent

Or in code:
    from socialpulse.agent import run_agent
    await run_agent()
"""

from socialpulse.agent.__main__ import AgentState, agent_lifespan, run_agent

__all__ = ["AgentState", "agent_lifespan", "run_agent"]
