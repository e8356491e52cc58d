"""Validation submodules: candidate URLs in, a valid/invalid partition out."""
