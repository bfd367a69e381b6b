"""erproxy HTTP API layer.

Usage
-----
Create and run the application::

    from erproxy.api import create_app

    app = create_app()              # health-only mode
    app = create_app(dependencies)  # with the sync trigger

"""

from erproxy.api.app import create_app

__all__ = ["create_app"]
