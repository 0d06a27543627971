"""Fare estimation and surge zones."""
