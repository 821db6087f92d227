"""Tool configuration and migration configuration loading."""
