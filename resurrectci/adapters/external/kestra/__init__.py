from resurrectci.adapters.external.kestra.client import KestraClient

__all__ = ["KestraClient"]
