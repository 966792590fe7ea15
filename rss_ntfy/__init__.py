"""
RSS ntfy - Push the newest entry of RSS/Atom feeds to an ntfy topic.

Checks feeds once per invocation, remembers what was last delivered
and consults the relay's own message cache before sending, so the same
entry is never pushed twice.
"""

__version__ = "1.0.0"
