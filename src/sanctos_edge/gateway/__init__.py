"""Outbound HTTP: RPC upstream dispatch and the indexer passthrough."""
