"""Núcleo de ingesta: normalización y caches en memoria."""
