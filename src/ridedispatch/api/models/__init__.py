"""Request/response models for the dispatch API."""
