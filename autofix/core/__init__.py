"""Core orchestration: providers, rate limiting and the conversation loop."""
