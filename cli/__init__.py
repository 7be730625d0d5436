"""Command line tools for the history sync service.

The typer application is ``cli.app.app``; it is not re-exported here so that
``cli.app`` keeps resolving to the module, which tests patch by path.
"""
