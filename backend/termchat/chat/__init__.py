"""Real-time chat room: session registry, history, commands and WebSocket."""
