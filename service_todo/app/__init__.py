"""
Todo Service application package.

Guidelines:
- The repository is authoritative; cache and events are best-effort.
- A write is visible to readers as soon as it commits, regardless of
  cache or event outcomes.
"""
