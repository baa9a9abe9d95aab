"""Quarter arithmetic and evaluation log helpers."""
