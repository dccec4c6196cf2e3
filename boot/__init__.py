"""Django project package for Sortify (settings, URLs, WSGI/ASGI entry points)."""
