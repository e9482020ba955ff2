"""
VoiceFlow - Voice-driven conversations with a generative AI model.

A turn-taking controller that arbitrates speech capture, remote inference
and speech playback so that exactly one of them owns the conversation at a
time, with an optional hands-free loop that resumes listening after every
spoken reply.
"""

__version__ = "1.0.0"
