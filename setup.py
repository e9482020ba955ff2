"""Setup script for VoiceFlow."""

from setuptools import setup, find_packages

setup(
    name="voiceflow",
    version="1.0.0",
    description="Voice-driven question answering with Gemini and ElevenLabs",
    packages=find_packages(include=['voiceflow', 'voiceflow.*', 'mocks', 'mocks.*']),
    python_requires=">=3.11",
    install_requires=[
        "python-dotenv>=1.0.0",
        "google-generativeai>=0.3.0",
        "elevenlabs>=2.0.0",
        "pygame>=2.5.0",
        "structlog>=23.0.0",
        "click>=8.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "voiceflow=voiceflow.cli.main:cli",
        ],
    },
)
