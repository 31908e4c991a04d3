"""Indexing services: stores, reconciler, search and background dispatch."""
