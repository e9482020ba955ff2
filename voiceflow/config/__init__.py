"""Configuration for VoiceFlow."""
