"""
Application package containing configuration, provider clients, the challenge
cache and the practice session for the Shadow Reading project.
"""

__all__ = [
    "config",
    "exceptions",
    "time_utils",
    "models",
    "services",
    "schemas",
    "utils",
]
