"""Chat service: conversation storage, stream splitting and the HTTP API."""
