"""Liveness and metrics resources.

Usage
-----
Import resources for route registration::

    from otto.api.health.resources import HealthzResource, MetricsResource
"""
