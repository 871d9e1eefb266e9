"""
Shared API
==========

HTTP middleware and exception handlers shared by all routers.
"""
