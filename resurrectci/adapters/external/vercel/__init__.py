from resurrectci.adapters.external.vercel.client import VercelClient, map_status, parse_events

__all__ = ["VercelClient", "map_status", "parse_events"]
