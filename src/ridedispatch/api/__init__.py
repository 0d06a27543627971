"""HTTP and WebSocket surface of the dispatch service."""
