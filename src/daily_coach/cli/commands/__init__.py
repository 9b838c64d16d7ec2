"""Typer command modules; importing them registers the commands on the app."""
