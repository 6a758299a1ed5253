"""zen-assets: catalog, session cache and template rendering for zen workspaces."""

__version__ = "0.3.0"
