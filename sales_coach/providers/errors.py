class ProviderNotConfigured(RuntimeError):
    """Raised when a provider is selected but its credentials are missing."""
