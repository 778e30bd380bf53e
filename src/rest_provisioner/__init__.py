"""Terraform-style lifecycle management for objects behind a REST API."""

__version__ = "0.1.0"
