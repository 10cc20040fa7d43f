"""
Foreman - decomposition and execution orchestration engine.

Turns a technical specification into a validated graph of work orders, routes
each one to a proposer under a daily budget, and refines the generated code
until it passes its checks.
"""

__version__ = "0.1.0"

from foreman.core.orchestrator import Foreman

__all__ = ["Foreman", "__version__"]
