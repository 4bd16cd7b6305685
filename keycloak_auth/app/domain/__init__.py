"""
Request-level authentication decision and cookie directives.
"""
