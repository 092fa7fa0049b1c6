"""Artifact download adapter."""
