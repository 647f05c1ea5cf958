"""
Session feature module.

Persists the signed-in principal's permissions, role and display identity,
and hands out immutable snapshots of them.
"""
