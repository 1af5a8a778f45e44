"""Application layer: configuration, wiring and the HTTP/WebSocket surface."""
