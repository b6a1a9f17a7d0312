"""Autonomous macro research agent.

This module implements a bounded research session in which an LLM reads
its own prior findings from a persistent store, calls tools to inspect
live market data, and commits a new finding that later sessions verify.

The findings table is the agent's memory: every session reads it first
and the commit of each session adjudicates the calls made before it.
"""

__version__ = "0.1.0"
