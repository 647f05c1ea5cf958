"""
Navigation feature module.

Permission-filtered console menu and guarded screens.
"""
