"""Knowledge hub: document, graph, generation and search services behind an orchestrator."""

__version__ = "0.3.0"
