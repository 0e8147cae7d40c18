"""Connections the provider speaks over: WebSocket and the in-process local channel."""
