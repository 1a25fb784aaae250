"""Transportes de entrada: HTTP (FastAPI) y MQTT (paho)."""
