"""reconf: let end users reconfigure a Python application with Python.

The application wraps its entry point with ``reconf.launch.wrap_main``.
If the user provides ``~/.config/<app>/<app>.py``, it is built into a
cached executable zip app that is rebuilt whenever it goes stale and is
started in place of the default program.
"""
