"""
Web application package.

Provides a FastAPI-based JSON API and a small browser frontend for playing
against a UCI engine with a score shown for every legal move.
"""
