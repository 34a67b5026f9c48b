"""Processing module - organized by flow type.

Submodules:
- sentiment: Windowed, incremental sentiment synthesis
- events: Event calendar persistence and similarity dedup
- common: Cross-flow utilities (generative backend adapter, JSON extraction)
- orchestrator: Scheduled pre-market batch over enabled tickers
"""
