"""Session-scoped state.

The participant cache is the single source of truth for "has this
person already been provisioned in the current session".
"""
