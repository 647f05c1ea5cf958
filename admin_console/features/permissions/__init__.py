"""
Permission management feature module.

Role-Based Access Control for the admin console: permission evaluation,
the directory service holding roles, modules and permissions, and the
role/module/staff permission editors.
"""
