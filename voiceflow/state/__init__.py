"""Session state and conversation history."""
