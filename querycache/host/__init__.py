"""
Host-side collaborators of the query cache: cancellation, hydration and
reactive observation. Nothing in caching/ imports from here at runtime.
"""
