"""Mock providers for running VoiceFlow without devices or APIs."""
