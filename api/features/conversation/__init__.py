"""Conversation feature package: DTOs, store, controller, and router.

This package owns conversation history. Each conversation is a single JSON
record keyed by its caller-supplied id; messages are only ever appended.
"""
