"""
Presale Admin - Server Package
==============================
HTTP backend holding the administrative data of a presale website.

This package provides:
- FastAPI application exposing the /api endpoints
- Single admin password gate issuing short-lived JWT session tokens
- MongoDB-backed storage for the presale end date, the progress bar
  value and the registered wallet addresses

Architecture:
    main.py     -> FastAPI app creation, middleware, exception handlers
    auth.py     -> Admin bootstrap, password hashing, JWT tokens, route protection
    config.py   -> Read config.yaml and environment variables
    database.py -> Lazy, memoized MongoDB connection
    store.py    -> Per-collection reads and writes
    routes.py   -> All REST API endpoint handlers
    errors.py   -> Error taxonomy mapped to HTTP status codes
"""
