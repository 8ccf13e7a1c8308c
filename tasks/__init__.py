"""tasks/ -- Per-user task records.

Layer rule: tasks/ imports only stdlib, third-party libraries and core/.
Ownership is enforced in the store: every query that reads or writes a task
also filters on owner_id, so one user's task ids are invisible to another.
"""
