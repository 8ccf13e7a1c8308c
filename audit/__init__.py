"""audit/ -- Append-only record of who did what, and how it went.

Layer rule: audit/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, auth/ or tasks/. api/main.py feeds it.
"""
