"""Configuration resolution for the automation client."""
