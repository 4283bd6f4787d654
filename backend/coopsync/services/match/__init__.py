"""Match synchronization services.

Stateless helpers imported by the HTTP routes: every call loads what it
needs from the store, mutates it inside the request's session and commits
once. Nothing here holds per-match state in process memory.
"""
