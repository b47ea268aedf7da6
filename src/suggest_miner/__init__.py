"""
suggest-miner: Resumable search-suggestion discovery.

Probes a search engine's autocomplete source with combinatorial query
variants, deduplicates what comes back, and expands the discovered vocabulary
into one bounded second round. Progress is checkpointed so an interrupted run
picks up where it stopped.
"""

__version__ = "0.1.0"
