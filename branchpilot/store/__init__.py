"""Persistent artefacts written during workflow runs."""
