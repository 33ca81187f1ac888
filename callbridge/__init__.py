"""Telephone call audio bridge to Dialogflow and Cloud Text-to-Speech."""

__version__ = "1.0.0"
