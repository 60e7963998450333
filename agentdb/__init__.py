"""
AgentDB

Conversational SQL agent: maps a PostgreSQL catalog, asks a language model
for SQL, gates destructive statements and summarizes the results.
"""

__version__ = "0.1.0"
