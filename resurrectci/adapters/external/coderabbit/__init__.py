from resurrectci.adapters.external.coderabbit.client import CodeRabbitClient

__all__ = ["CodeRabbitClient"]
