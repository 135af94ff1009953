"""auth/ -- Credential and token-lifecycle engine for linkauth.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/; settings are passed in by the caller.
api/ imports from auth/, not the other way around.
"""
