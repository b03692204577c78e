"""
Query caching package.

Holds deferred query values keyed by canonical key strings. Entries are
replaced wholesale and never evicted on a timer; prefer explicit
invalidation over removal so in-flight readers keep their value.
"""
