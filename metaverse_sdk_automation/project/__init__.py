"""Project and plugin directory resolution."""
