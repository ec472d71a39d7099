"""Client module - Storage API, credentials, sources and the upload pipeline."""
