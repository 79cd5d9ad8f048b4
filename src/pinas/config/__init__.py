from pinas.config.settings import config

__all__ = ["config"]
