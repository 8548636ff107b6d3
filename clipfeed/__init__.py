"""Clip feed engine: ranked short-form video feeds."""
