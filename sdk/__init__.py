"""sdk - shared infrastructure for chatlog applications

Contains reusable modules for:
    - logging: Structured hierarchical logging with rotation
"""

__version__ = "1.0-beta"
__versionInfo__ = (1, 0, 0, "beta")
