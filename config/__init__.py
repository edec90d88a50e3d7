"""Configuration package utilities."""

__all__ = ["ConfigController", "load_section"]


def __getattr__(name: str):
    if name == "ConfigController":
        from config.controller import ConfigController

        return ConfigController
    if name == "load_section":
        from config.controller import load_section

        return load_section
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
