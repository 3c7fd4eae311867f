"""Occasion expansion (densification) engine.

Everything here is deterministic: the same sorted records and species list
always produce the same rows, which keeps golden-file tests stable.
"""
