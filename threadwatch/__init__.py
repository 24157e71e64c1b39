"""threadwatch: incremental forum thread and comment monitor.

Watches forum RSS feeds and thread pages, remembers what it has already
seen, walks comment pages incrementally, filters what is interesting and
pushes notifications to a configured channel.
"""

__version__ = "1.0.0"
