from resurrectci.adapters.ai.gemini.client import GeminiClient

__all__ = ["GeminiClient"]
