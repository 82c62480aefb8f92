"""Services for external API interactions."""

from zpr.services.credentials import CredentialManager
from zpr.services.llm import create_model_backend
from zpr.services.repo_client import RepoClient, create_repo_client

__all__ = ["CredentialManager", "RepoClient", "create_repo_client", "create_model_backend"]
