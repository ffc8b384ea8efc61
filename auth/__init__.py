"""auth/ -- Authentication core: value types, stores, tokens, orchestrator.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/ (auth/dependencies.py is the one
FastAPI-aware module). api/ imports from auth/, not the other way around.
"""
