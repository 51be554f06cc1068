from resurrectci.adapters.external.github.client import GitHubClient, aggregate_check_state

__all__ = ["GitHubClient", "aggregate_check_state"]
