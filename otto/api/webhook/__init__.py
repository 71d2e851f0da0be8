"""GitHub webhook receiver.

Usage
-----
Import the resource for route registration::

    from otto.api.webhook.resources import WebhookResource
"""
