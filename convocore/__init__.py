"""
Convocore
=========

Conversational orchestration layer: chat sessions, bounded context memory
and a tiered reply pipeline (predictions, knowledge service, language
model, heuristics, canned replies).
"""

__version__ = "1.0.0"
