"""Narration: providers, request governor, response clean-up and the section orchestrator."""
